"""Finding and deleting NAT gateways."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import FatalError, ResourceFilter, _filter_or_default, retry

logger = logging.getLogger(__name__)

# Deletions run one thread per gateway; beyond this many the API is likely to throttle.
_MAX_CONCURRENT_DELETES = 100
# Wait up to five minutes for deletion: 30 checks, 10 seconds apart.
_WAIT_ATTEMPTS = 30
_WAIT_INTERVAL = 10.0


class TooManyNatError(Exception):
    """Raised when more NAT gateways are requested for deletion than can be handled at once."""

    def __init__(self) -> None:
        super().__init__("Too many NAT Gateways requested at once.")


def get_nat_gateway_name(gateway: dict[str, Any]) -> str:
    """Return the value of a gateway's Name tag, or an empty string."""
    for tag in gateway.get("Tags") or []:
        if tag.get("Key") == "Name":
            return tag.get("Value") or ""
    return ""


def should_include_nat_gateway(
    gateway: dict[str, Any] | None,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> bool:
    """Decide whether a gateway is old enough and its Name tag passes the filter."""
    if gateway is None:
        return False
    created = gateway.get("CreateTime")
    if created is not None and exclude_after < created:
        return False
    return _filter_or_default(name_filter).matches(get_nat_gateway_name(gateway))


def get_all_nat_gateways(client: Any, exclude_after: datetime, name_filter: ResourceFilter | None) -> list[str]:
    """Return the ids of gateways that should be deleted, following pagination."""
    ids: list[str] = []
    token: str | None = None
    while True:
        kwargs = {"NextToken": token} if token else {}
        page = client.describe_nat_gateways(**kwargs)
        ids.extend(
            gateway["NatGatewayId"]
            for gateway in page.get("NatGateways", [])
            if should_include_nat_gateway(gateway, exclude_after, name_filter)
        )
        token = page.get("NextToken")
        if not token:
            return ids


def are_all_nat_gateways_deleted(client: Any, identifiers: list[str]) -> bool:
    """True when none of the gateways is known any more or all are in the deleted state."""
    response = client.describe_nat_gateways(NatGatewayIds=identifiers)
    return all(
        gateway.get("State") == "deleted"
        for gateway in response.get("NatGateways", [])
        if gateway is not None
    )


def _delete_nat_gateway(client: Any, gateway_id: str) -> None:
    client.delete_nat_gateway(NatGatewayId=gateway_id)


def nuke_all_nat_gateways(client: Any, region: str, identifiers: list[str]) -> list[str]:
    """Delete the given gateways concurrently and wait until they are gone.

    Raises :class:`TooManyNatError` for more than 100 gateways, an
    :class:`ExceptionGroup` when any delete request failed, and
    :class:`TimeoutError` when they are not gone within five minutes.
    """
    if not identifiers:
        logger.info("No Nat Gateways to nuke in region %s", region)
        return []

    if len(identifiers) > _MAX_CONCURRENT_DELETES:
        logger.error("Nuking too many NAT gateways at once (100): halting to avoid hitting AWS API rate limiting")
        raise TooManyNatError()

    logger.info("Deleting Nat Gateways in region %s", region)
    with ThreadPoolExecutor(max_workers=len(identifiers)) as pool:
        futures = [pool.submit(_delete_nat_gateway, client, gateway_id) for gateway_id in identifiers]
        outcomes = [future.exception() for future in futures]

    errors = [exc for exc in outcomes if exc is not None]
    for exc in errors:
        logger.error("[Failed] %s", exc)
    if errors:
        raise ExceptionGroup("failed deleting NAT gateways", errors)

    def check_deleted() -> None:
        try:
            deleted = are_all_nat_gateways_deleted(client, identifiers)
        except Exception as exc:
            raise FatalError(exc) from exc
        if not deleted:
            raise RuntimeError("Not all NAT gateways deleted.")

    retry(check_deleted, "Waiting for all NAT gateways to be deleted.", _WAIT_ATTEMPTS, _WAIT_INTERVAL)
    for gateway_id in identifiers:
        logger.info("[OK] NAT Gateway %s was deleted in %s", gateway_id, region)
    return list(identifiers)


@dataclass
class NatGateways:
    """All NAT gateways found in a region."""

    nat_gateway_ids: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "nat-gateway"
    # Gateways are deleted in parallel, one call each, so batches stay small.
    max_batch_size: ClassVar[int] = 10

    @property
    def resource_identifiers(self) -> list[str]:
        """The ids of the gateways."""
        return self.nat_gateway_ids

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given gateways using a client from the session."""
        return nuke_all_nat_gateways(session.client("ec2"), session.region_name, list(identifiers))