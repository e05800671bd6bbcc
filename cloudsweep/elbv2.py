"""Finding and deleting application and network load balancers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import ResourceFilter, _filter_or_default

logger = logging.getLogger(__name__)


def should_include_elbv2(
    balancer: dict[str, Any] | None,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> bool:
    """Decide whether a load balancer is old enough and its name passes the filter."""
    if balancer is None:
        return False
    created = balancer.get("CreatedTime")
    if created is not None and exclude_after < created:
        return False
    return _filter_or_default(name_filter).matches(balancer.get("LoadBalancerName") or "")


def get_all_elbv2_instances(
    client: Any, exclude_after: datetime, name_filter: ResourceFilter | None
) -> list[str]:
    """Return the ARNs of load balancers that should be deleted."""
    result = client.describe_load_balancers()
    return [
        balancer["LoadBalancerArn"]
        for balancer in result.get("LoadBalancers", [])
        if should_include_elbv2(balancer, exclude_after, name_filter)
    ]


def nuke_all_elbv2_instances(client: Any, region: str, arns: list[str]) -> list[str]:
    """Delete every given load balancer and wait for them to go.

    Failed delete requests are logged; a failure while waiting is raised.
    Returns the ARNs deleted.
    """
    if not arns:
        logger.info("No V2 Elastic Load Balancers to nuke in region %s", region)
        return []

    logger.info("Deleting all V2 Elastic Load Balancers in region %s", region)
    deleted: list[str] = []
    for arn in arns:
        try:
            client.delete_load_balancer(LoadBalancerArn=arn)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s", exc)
        else:
            deleted.append(arn)
            logger.info("Deleted ELBv2: %s", arn)

    if deleted:
        try:
            client.get_waiter("load_balancers_deleted").wait(LoadBalancerArns=deleted)
        except Exception as exc:
            logger.error("[Failed] %s", exc)
            raise

    logger.info("[OK] %d V2 Elastic Load Balancer(s) deleted in %s", len(deleted), region)
    return deleted


@dataclass
class LoadBalancersV2:
    """All application and network load balancers found in a region."""

    arns: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "elbv2"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The ARNs of the load balancers."""
        return self.arns

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given load balancers using a client from the session."""
        return nuke_all_elbv2_instances(session.client("elbv2"), session.region_name, list(identifiers))