"""Finding customer managed KMS keys and scheduling their deletion."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

logger = logging.getLogger(__name__)

# Days before a scheduled key is removed; KMS accepts 7 to 30 inclusive.
KMS_REMOVAL_WINDOW = 7


def should_include_kms_user_key(client: Any, key: dict[str, Any], exclude_after: datetime) -> bool:
    """Decide whether a key is customer managed, not yet scheduled, and old enough."""
    metadata = client.describe_key(KeyId=key["KeyId"])["KeyMetadata"]
    if metadata.get("KeyManager") != "CUSTOMER":
        return False
    if metadata.get("DeletionDate") is not None:
        return False
    if metadata.get("PendingDeletionWindowInDays") is not None:
        return False
    return not metadata["CreationDate"] > exclude_after


def _filter_page(client: Any, keys: list[dict[str, Any]], exclude_after: datetime) -> list[str]:
    if not keys:
        return []
    with ThreadPoolExecutor(max_workers=len(keys)) as pool:
        futures = [pool.submit(should_include_kms_user_key, client, key, exclude_after) for key in keys]
    kept: list[str] = []
    for key, future in zip(keys, futures):
        exc = future.exception()
        if exc is not None:
            logger.error("[Failed] %s", exc)
        elif future.result():
            kept.append(key["KeyId"])
    return kept


def get_all_kms_user_keys(client: Any, batch_size: int, exclude_after: datetime) -> list[str]:
    """Return the ids of customer managed keys created no later than ``exclude_after``.

    Keys are listed page by page and described concurrently; keys that cannot
    be described are logged and left out.
    """
    key_ids: list[str] = []
    marker: str | None = None
    page_number = 1
    while True:
        kwargs: dict[str, Any] = {"Limit": batch_size}
        if marker:
            kwargs["Marker"] = marker
        page = client.list_keys(**kwargs)
        logger.debug("Loading User Key from page %d", page_number)
        key_ids.extend(_filter_page(client, list(page.get("Keys", [])), exclude_after))
        page_number += 1
        marker = page.get("NextMarker")
        if not page.get("Truncated") or not marker:
            return key_ids


def request_key_deletion(client: Any, key_id: str) -> None:
    """Schedule one key for deletion after the removal window."""
    client.schedule_key_deletion(KeyId=key_id, PendingWindowInDays=KMS_REMOVAL_WINDOW)


def nuke_all_customer_managed_kms_keys(client: Any, region: str, key_ids: list[str]) -> list[str]:
    """Schedule every given key for deletion concurrently.

    Returns the ids scheduled; if any failed, their errors are raised together
    as an :class:`ExceptionGroup`.
    """
    if not key_ids:
        logger.info("No Customer Keys to nuke in region %s", region)
        return []

    logger.info("Deleting Keys secrets in region %s", region)
    with ThreadPoolExecutor(max_workers=len(key_ids)) as pool:
        futures = [pool.submit(request_key_deletion, client, key_id) for key_id in key_ids]

    scheduled: list[str] = []
    errors: list[Exception] = []
    for key_id, future in zip(key_ids, futures):
        exc = future.exception()
        if exc is None:
            scheduled.append(key_id)
        else:
            logger.error("[Failed] %s", exc)
            errors.append(exc)
    if errors:
        raise ExceptionGroup("failed scheduling KMS key deletion", errors)
    return scheduled


@dataclass
class KmsCustomerKeys:
    """All customer managed KMS keys found in a region."""

    key_ids: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "kmscustomerkeys"
    max_batch_size: ClassVar[int] = 100

    @property
    def resource_identifiers(self) -> list[str]:
        """The ids of the keys."""
        return self.key_ids

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Schedule the given keys for deletion using a client from the session."""
        return nuke_all_customer_managed_kms_keys(session.client("kms"), session.region_name, list(identifiers))