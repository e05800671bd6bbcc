"""Finding and releasing Elastic IP addresses."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from cloudsweep.common import FIRST_SEEN_TAG_KEY, error_code

logger = logging.getLogger(__name__)

FIRST_SEEN_LAYOUT = "%Y-%m-%d %H:%M:%S"


def set_first_seen_tag(client: Any, address: dict[str, Any], key: str, value: datetime, layout: str) -> None:
    """Tag an address with the time it was first seen.

    Elastic IPs carry no creation time, so the tag stands in for one.
    """
    client.create_tags(
        Resources=[address["AllocationId"]],
        Tags=[{"Key": key, "Value": value.strftime(layout)}],
    )


def get_first_seen_tag(address: dict[str, Any], key: str, layout: str) -> datetime | None:
    """Return the first-seen time stored on an address, or None if it has none."""
    for tag in address.get("Tags") or []:
        if tag.get("Key") == key:
            return datetime.strptime(tag["Value"], layout).replace(tzinfo=timezone.utc)
    return None


def get_all_eip_addresses(client: Any, exclude_after: datetime) -> list[str]:
    """Return the allocation ids of addresses first seen before ``exclude_after``.

    Addresses without a first-seen tag are tagged with the current time.
    """
    allocation_ids: list[str] = []
    for address in client.describe_addresses().get("Addresses", []):
        first_seen = get_first_seen_tag(address, FIRST_SEEN_TAG_KEY, FIRST_SEEN_LAYOUT)
        if first_seen is None:
            first_seen = datetime.now(timezone.utc)
            set_first_seen_tag(client, address, FIRST_SEEN_TAG_KEY, first_seen, FIRST_SEEN_LAYOUT)
        if exclude_after > first_seen:
            allocation_ids.append(address["AllocationId"])
    return allocation_ids


def nuke_all_eip_addresses(client: Any, region: str, allocation_ids: list[str]) -> list[str]:
    """Release every given address; failures are logged. Returns those released."""
    if not allocation_ids:
        logger.info("No Elastic IPs to nuke in region %s", region)
        return []

    logger.info("Deleting all Elastic IPs in region %s", region)
    released: list[str] = []
    for allocation_id in allocation_ids:
        try:
            client.release_address(AllocationId=allocation_id)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            if error_code(exc) == "AuthFailure":
                logger.warning(
                    "EIP %s can't be deleted, it is still attached to an active resource", allocation_id
                )
            else:
                logger.error("[Failed] %s", exc)
        else:
            released.append(allocation_id)
            logger.info("Deleted Elastic IP: %s", allocation_id)

    logger.info("[OK] %d Elastic IP(s) deleted in %s", len(released), region)
    return released


@dataclass
class EIPAddresses:
    """All Elastic IP addresses found in a region."""

    allocation_ids: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "eip"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The allocation ids of the addresses."""
        return self.allocation_ids

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Release the given addresses using a client from the session."""
        return nuke_all_eip_addresses(session.client("ec2"), session.region_name, list(identifiers))