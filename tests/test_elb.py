from datetime import datetime, timedelta, timezone

import pytest

from cloudsweep.common import ApiError
from cloudsweep.elb import (
    ElbDeleteError,
    LoadBalancers,
    get_all_elb_instances,
    nuke_all_elb_instances,
    wait_until_elb_deleted,
)

NOW = datetime.now(timezone.utc)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("cloudsweep.elb.time.sleep", lambda seconds: None)


class FakeElb:
    def __init__(self, names, delete_failures=(), describe_error=None, never_gone=False):
        self.balancers = {name: {"LoadBalancerName": name, "CreatedTime": NOW} for name in names}
        self.delete_failures = set(delete_failures)
        self.describe_error = describe_error
        self.never_gone = never_gone
        self.describe_calls = 0

    def describe_load_balancers(self, LoadBalancerNames=None):
        self.describe_calls += 1
        if LoadBalancerNames is None:
            return {"LoadBalancerDescriptions": list(self.balancers.values())}
        if self.describe_error is not None:
            raise self.describe_error
        if self.never_gone:
            return {"LoadBalancerDescriptions": []}
        missing = [n for n in LoadBalancerNames if n not in self.balancers]
        if missing:
            raise ApiError("LoadBalancerNotFound", "not found")
        return {"LoadBalancerDescriptions": [self.balancers[n] for n in LoadBalancerNames]}

    def delete_load_balancer(self, LoadBalancerName):
        if LoadBalancerName in self.delete_failures:
            raise ApiError("AccessDenied", "denied")
        del self.balancers[LoadBalancerName]


class FakeSession:
    region_name = "us-east-1"

    def __init__(self, client):
        self._client = client

    def client(self, name):
        assert name == "elb"
        return self._client


def test_list_elbs_respects_exclude_after():
    client = FakeElb(["cloud-nuke-test-abc"])
    assert "cloud-nuke-test-abc" not in get_all_elb_instances(client, NOW - timedelta(hours=1))
    assert "cloud-nuke-test-abc" in get_all_elb_instances(client, NOW + timedelta(hours=1))


def test_nuke_elbs_removes_from_listing():
    client = FakeElb(["cloud-nuke-test-abc"])
    deleted = nuke_all_elb_instances(client, "us-east-1", ["cloud-nuke-test-abc"])
    assert deleted == ["cloud-nuke-test-abc"]
    assert "cloud-nuke-test-abc" not in get_all_elb_instances(client, NOW + timedelta(hours=1))


def test_nuke_empty_list():
    client = FakeElb(["a"])
    assert nuke_all_elb_instances(client, "us-east-1", []) == []
    assert client.describe_calls == 0


def test_nuke_skips_failed_deletes():
    client = FakeElb(["a", "b"], delete_failures={"a"})
    assert nuke_all_elb_instances(client, "us-east-1", ["a", "b"]) == ["b"]
    assert "a" in client.balancers


def test_nuke_with_all_deletes_failed_skips_waiting():
    client = FakeElb(["a"], delete_failures={"a"})
    assert nuke_all_elb_instances(client, "us-east-1", ["a"]) == []
    assert client.describe_calls == 0


def test_wait_returns_when_not_found():
    client = FakeElb([])
    wait_until_elb_deleted(client, ["gone"])
    assert client.describe_calls == 1


def test_wait_raises_after_thirty_polls():
    client = FakeElb(["a"], never_gone=True)
    with pytest.raises(ElbDeleteError, match="ELB was not deleted"):
        wait_until_elb_deleted(client, ["a"])
    assert client.describe_calls == 30


def test_wait_reraises_other_errors():
    client = FakeElb([], describe_error=ApiError("Throttling", "slow down"))
    with pytest.raises(ApiError) as info:
        wait_until_elb_deleted(client, ["a"])
    assert info.value.code == "Throttling"


def test_nuke_raises_when_waiting_fails():
    client = FakeElb(["a"], describe_error=ApiError("Throttling", "slow down"))
    with pytest.raises(ApiError):
        nuke_all_elb_instances(client, "us-east-1", ["a"])


def test_resource_type():
    client = FakeElb(["a"])
    balancers = LoadBalancers(names=["a"])
    assert balancers.resource_name == "elb"
    assert balancers.max_batch_size == 200
    assert balancers.resource_identifiers == ["a"]
    assert balancers.nuke(FakeSession(client), ["a"]) == ["a"]
    assert client.balancers == {}