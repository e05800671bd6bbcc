import re
import threading
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest

from cloudsweep.common import FIRST_SEEN_TAG_KEY, ApiError, ResourceFilter, format_timestamp_tag, parse_timestamp_tag
from cloudsweep.opensearch import (
    OpenSearchDomains,
    TooManyOpenSearchDomainsError,
    get_all_active_opensearch_domains,
    get_first_seen_opensearch_domain_tag,
    get_opensearch_domains_to_nuke,
    nuke_all_opensearch_domains,
    should_include_opensearch_domain,
    tag_opensearch_domain_when_first_seen,
)

NOW = datetime.now(timezone.utc)


class FakeOpenSearch:
    def __init__(self, remove_on_delete=True):
        self.domains = {}
        self.tags = {}
        self.failing_deletes = set()
        self.remove_on_delete = remove_on_delete
        self.describe_error = None
        self._lock = threading.Lock()

    def create(self, name, created=True, deleted=False):
        arn = f"arn:aws:es:us-east-1:000000000000:domain/{name}"
        self.domains[name] = {"DomainName": name, "ARN": arn, "Created": created, "Deleted": deleted}
        self.tags[arn] = []
        return self.domains[name]

    def list_domain_names(self):
        return {"DomainNames": [{"DomainName": name} for name in self.domains]}

    def describe_domains(self, DomainNames):
        if self.describe_error is not None:
            raise self.describe_error
        return {"DomainStatusList": [dict(self.domains[n]) for n in DomainNames if n in self.domains]}

    def list_tags(self, ARN):
        return {"TagList": list(self.tags[ARN])}

    def add_tags(self, ARN, TagList):
        self.tags[ARN].extend(TagList)

    def delete_domain(self, DomainName):
        if DomainName in self.failing_deletes:
            raise ApiError("ValidationException", "cannot delete")
        if self.remove_on_delete:
            with self._lock:
                self.domains.pop(DomainName)


class FakeSession:
    region_name = "us-east-1"

    def __init__(self, client):
        self._client = client
        self.requested = []

    def client(self, name):
        self.requested.append(name)
        return self._client


def test_can_tag_opensearch_domains():
    client = FakeOpenSearch()
    domain = client.create("cloud-nuke-test-a")
    tag_value = datetime.now(timezone.utc)
    tag_opensearch_domain_when_first_seen(client, domain["ARN"], tag_value)
    returned = get_first_seen_opensearch_domain_tag(client, domain["ARN"])
    assert parse_timestamp_tag(format_timestamp_tag(tag_value)) == parse_timestamp_tag(format_timestamp_tag(returned))


def test_tag_uses_first_seen_key():
    client = FakeOpenSearch()
    domain = client.create("cloud-nuke-test-a")
    moment = datetime(2021, 5, 4, 3, 2, 1, tzinfo=timezone.utc)
    tag_opensearch_domain_when_first_seen(client, domain["ARN"], moment)
    assert client.tags[domain["ARN"]] == [{"Key": FIRST_SEEN_TAG_KEY, "Value": format_timestamp_tag(moment)}]


def test_untagged_domain_has_no_first_seen():
    client = FakeOpenSearch()
    domain = client.create("cloud-nuke-test-a")
    assert get_first_seen_opensearch_domain_tag(client, domain["ARN"]) is None


def test_list_domains_older_than_24_hours():
    client = FakeOpenSearch()
    domain1 = client.create("cloud-nuke-test-one")
    domain2 = client.create("cloud-nuke-test-two")
    tag_opensearch_domain_when_first_seen(client, domain1["ARN"], NOW - timedelta(hours=48))
    tag_opensearch_domain_when_first_seen(client, domain2["ARN"], NOW - timedelta(hours=23))
    domains = get_opensearch_domains_to_nuke(client, NOW - timedelta(hours=24), None)
    assert "cloud-nuke-test-one" in domains
    assert "cloud-nuke-test-two" not in domains


def test_untagged_domain_is_tagged_and_left_out():
    client = FakeOpenSearch()
    domain = client.create("cloud-nuke-test-new")
    assert get_opensearch_domains_to_nuke(client, NOW + timedelta(hours=1), None) == []
    assert get_first_seen_opensearch_domain_tag(client, domain["ARN"]) is not None


def test_name_filter_applies():
    client = FakeOpenSearch()
    for name in ("keep-me", "drop-me"):
        domain = client.create(name)
        tag_opensearch_domain_when_first_seen(client, domain["ARN"], NOW - timedelta(days=2))
    result = get_opensearch_domains_to_nuke(client, NOW, ResourceFilter(include=(re.compile("^drop"),)))
    assert result == ["drop-me"]


def test_active_domains_only():
    client = FakeOpenSearch()
    client.create("active")
    client.create("creating", created=False)
    client.create("deleting", deleted=True)
    names = [domain["DomainName"] for domain in get_all_active_opensearch_domains(client)]
    assert names == ["active"]


def test_active_domains_when_none_exist():
    assert get_all_active_opensearch_domains(FakeOpenSearch()) == []


@pytest.mark.parametrize(
    ("exclude_after", "name_filter", "expected"),
    [
        (NOW + timedelta(hours=1), ResourceFilter(exclude=(re.compile("^cloud-nuke-*"),)), False),
        (NOW + timedelta(hours=1), ResourceFilter(include=(re.compile("^cloud-nuke-*"),)), True),
        (NOW - timedelta(hours=1), None, False),
    ],
)
def test_should_include_opensearch_domain(exclude_after, name_filter, expected):
    domain = {"DomainName": "cloud-nuke-test"}
    assert should_include_opensearch_domain(domain, NOW, exclude_after, name_filter) is expected


def test_should_include_none_domain():
    assert should_include_opensearch_domain(None, NOW, NOW + timedelta(hours=1), None) is False


def test_can_nuke_opensearch_domain():
    client = FakeOpenSearch()
    client.create("cloud-nuke-test-a")
    assert nuke_all_opensearch_domains(client, "us-east-1", ["cloud-nuke-test-a"]) == ["cloud-nuke-test-a"]
    names = [domain["DomainName"] for domain in get_all_active_opensearch_domains(client)]
    assert "cloud-nuke-test-a" not in names


def test_nuke_nothing():
    assert nuke_all_opensearch_domains(FakeOpenSearch(), "us-east-1", []) == []


def test_nuke_too_many():
    with pytest.raises(TooManyOpenSearchDomainsError, match="Too many OpenSearch Domains"):
        nuke_all_opensearch_domains(FakeOpenSearch(), "us-east-1", [f"d{i}" for i in range(101)])


def test_nuke_failures_are_grouped():
    client = FakeOpenSearch()
    client.create("good")
    client.create("bad")
    client.failing_deletes.add("bad")
    with pytest.raises(ExceptionGroup) as info:
        nuke_all_opensearch_domains(client, "us-east-1", ["good", "bad"])
    assert [error.code for error in info.value.exceptions] == ["ValidationException"]


@mock.patch("cloudsweep.common.time.sleep")
def test_nuke_times_out_when_domains_remain(sleep):
    client = FakeOpenSearch(remove_on_delete=False)
    client.create("stuck")
    with pytest.raises(TimeoutError):
        nuke_all_opensearch_domains(client, "us-east-1", ["stuck"])
    assert sleep.call_count == 29


def test_nuke_describe_error_is_fatal():
    client = FakeOpenSearch()
    client.create("a")
    client.describe_error = ApiError("AccessDenied", "no")
    with pytest.raises(ApiError) as info:
        nuke_all_opensearch_domains(client, "us-east-1", ["a"])
    assert info.value.code == "AccessDenied"


def test_resource_type_nuke_uses_opensearch_client():
    client = FakeOpenSearch()
    client.create("a")
    session = FakeSession(client)
    resources = OpenSearchDomains(domain_names=["a"])
    assert resources.resource_name == "opensearchdomain"
    assert resources.max_batch_size == 10
    assert resources.resource_identifiers == ["a"]
    assert resources.nuke(session, ["a"]) == ["a"]
    assert session.requested == ["opensearch"]