import threading
from datetime import datetime, timedelta, timezone

import pytest

from cloudsweep.common import ApiError
from cloudsweep.kms_customer_key import (
    KMS_REMOVAL_WINDOW,
    KmsCustomerKeys,
    get_all_kms_user_keys,
    nuke_all_customer_managed_kms_keys,
    request_key_deletion,
    should_include_kms_user_key,
)

NOW = datetime.now(timezone.utc)


class FakeKms:
    def __init__(self, keys, describe_failures=(), schedule_failures=()):
        self.metadata = {k["KeyId"]: k for k in keys}
        self.describe_failures = set(describe_failures)
        self.schedule_failures = set(schedule_failures)
        self.list_calls = []
        self.scheduled = {}
        self._lock = threading.Lock()

    def list_keys(self, Limit, Marker=None):
        self.list_calls.append((Limit, Marker))
        ids = list(self.metadata)
        start = int(Marker) if Marker else 0
        page = ids[start : start + Limit]
        end = start + Limit
        result = {"Keys": [{"KeyId": i} for i in page], "Truncated": end < len(ids)}
        if end < len(ids):
            result["NextMarker"] = str(end)
        return result

    def describe_key(self, KeyId):
        if KeyId in self.describe_failures:
            raise ApiError("NotFoundException", "no key")
        return {"KeyMetadata": dict(self.metadata[KeyId])}

    def schedule_key_deletion(self, KeyId, PendingWindowInDays):
        if KeyId in self.schedule_failures:
            raise ApiError("KMSInvalidStateException", "bad state")
        with self._lock:
            self.scheduled[KeyId] = PendingWindowInDays
            self.metadata[KeyId]["PendingDeletionWindowInDays"] = PendingWindowInDays
            self.metadata[KeyId]["DeletionDate"] = NOW + timedelta(days=PendingWindowInDays)


class FakeSession:
    region_name = "us-east-1"

    def __init__(self, client):
        self._client = client

    def client(self, name):
        assert name == "kms"
        return self._client


def customer_key(key_id, created=NOW, manager="CUSTOMER"):
    return {"KeyId": key_id, "KeyManager": manager, "CreationDate": created}


def test_list_kms_user_keys_time_shift():
    client = FakeKms([customer_key("key-1", NOW - timedelta(minutes=1))])
    assert "key-1" in get_all_kms_user_keys(client, KmsCustomerKeys.max_batch_size, NOW)
    assert "key-1" not in get_all_kms_user_keys(client, KmsCustomerKeys.max_batch_size, NOW - timedelta(hours=1))


def test_removed_key_not_listed_again():
    client = FakeKms([customer_key("key-1", NOW - timedelta(minutes=1))])
    assert nuke_all_customer_managed_kms_keys(client, "us-east-1", ["key-1"]) == ["key-1"]
    assert "key-1" not in get_all_kms_user_keys(client, 100, NOW)


def test_list_follows_pages_and_keeps_order():
    keys = [customer_key(f"key-{i}", NOW - timedelta(days=1)) for i in range(5)]
    client = FakeKms(keys)
    assert get_all_kms_user_keys(client, 2, NOW) == [f"key-{i}" for i in range(5)]
    assert client.list_calls == [(2, None), (2, "2"), (2, "4")]


def test_list_skips_aws_managed_and_describe_failures():
    client = FakeKms(
        [
            customer_key("mine", NOW - timedelta(days=1)),
            customer_key("aws", NOW - timedelta(days=1), manager="AWS"),
            customer_key("broken", NOW - timedelta(days=1)),
        ],
        describe_failures={"broken"},
    )
    assert get_all_kms_user_keys(client, 100, NOW) == ["mine"]


@pytest.mark.parametrize(
    "extra, expected",
    [
        ({}, True),
        ({"DeletionDate": NOW}, False),
        ({"PendingDeletionWindowInDays": 7}, False),
        ({"KeyManager": "AWS"}, False),
        ({"CreationDate": NOW + timedelta(hours=1)}, False),
    ],
)
def test_should_include_kms_user_key(extra, expected):
    metadata = customer_key("k", NOW - timedelta(hours=1))
    metadata.update(extra)
    client = FakeKms([metadata])
    assert should_include_kms_user_key(client, {"KeyId": "k"}, NOW) is expected


def test_should_include_raises_on_describe_failure():
    client = FakeKms([customer_key("k")], describe_failures={"k"})
    with pytest.raises(ApiError):
        should_include_kms_user_key(client, {"KeyId": "k"}, NOW)


def test_request_key_deletion_uses_removal_window():
    client = FakeKms([customer_key("k")])
    request_key_deletion(client, "k")
    assert client.scheduled == {"k": KMS_REMOVAL_WINDOW}
    assert KMS_REMOVAL_WINDOW == 7


def test_nuke_empty_list():
    client = FakeKms([])
    assert nuke_all_customer_managed_kms_keys(client, "us-east-1", []) == []


def test_nuke_collects_errors_after_trying_all():
    client = FakeKms([customer_key("a"), customer_key("b")], schedule_failures={"a"})
    with pytest.raises(ExceptionGroup) as info:
        nuke_all_customer_managed_kms_keys(client, "us-east-1", ["a", "b"])
    assert len(info.value.exceptions) == 1
    assert client.scheduled == {"b": KMS_REMOVAL_WINDOW}


def test_resource_type():
    client = FakeKms([customer_key("a")])
    keys = KmsCustomerKeys(key_ids=["a"])
    assert keys.resource_name == "kmscustomerkeys"
    assert keys.max_batch_size == 100
    assert keys.resource_identifiers == ["a"]
    assert keys.nuke(FakeSession(client), ["a"]) == ["a"]
    assert "a" in client.scheduled