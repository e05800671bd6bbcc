"""Finding and deleting classic Elastic Load Balancers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import error_code

logger = logging.getLogger(__name__)

_WAIT_ATTEMPTS = 30
_WAIT_INTERVAL = 1.0


class ElbDeleteError(Exception):
    """Raised when load balancers are still present after waiting for their deletion."""

    def __init__(self) -> None:
        super().__init__("ELB was not deleted")


def wait_until_elb_deleted(client: Any, names: list[str]) -> None:
    """Poll until the named load balancers are no longer found.

    Raises :class:`ElbDeleteError` when they are still there after 30 polls,
    and re-raises any error other than ``LoadBalancerNotFound``.
    """
    for _ in range(_WAIT_ATTEMPTS):
        try:
            client.describe_load_balancers(LoadBalancerNames=names)
        except Exception as exc:
            if error_code(exc) == "LoadBalancerNotFound":
                return
            raise
        time.sleep(_WAIT_INTERVAL)
        logger.debug("Waiting for ELB to be deleted")
    raise ElbDeleteError()


def get_all_elb_instances(client: Any, exclude_after: datetime) -> list[str]:
    """Return the names of load balancers created before ``exclude_after``."""
    result = client.describe_load_balancers()
    return [
        balancer["LoadBalancerName"]
        for balancer in result.get("LoadBalancerDescriptions", [])
        if exclude_after > balancer["CreatedTime"]
    ]


def nuke_all_elb_instances(client: Any, region: str, names: list[str]) -> list[str]:
    """Delete every given load balancer and wait for them to go.

    Failed delete requests are logged; a failure while waiting is raised.
    Returns the names deleted.
    """
    if not names:
        logger.info("No Elastic Load Balancers to nuke in region %s", region)
        return []

    logger.info("Deleting all Elastic Load Balancers in region %s", region)
    deleted: list[str] = []
    for name in names:
        try:
            client.delete_load_balancer(LoadBalancerName=name)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s", exc)
        else:
            deleted.append(name)
            logger.info("Deleted ELB: %s", name)

    if deleted:
        try:
            wait_until_elb_deleted(client, deleted)
        except Exception as exc:
            logger.error("[Failed] %s", exc)
            raise

    logger.info("[OK] %d Elastic Load Balancer(s) deleted in %s", len(deleted), region)
    return deleted


@dataclass
class LoadBalancers:
    """All classic load balancers found in a region."""

    names: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "elb"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The names of the load balancers."""
        return self.names

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given load balancers using a client from the session."""
        return nuke_all_elb_instances(session.client("elb"), session.region_name, list(identifiers))