"""Finding and deleting RDS database instances."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


class RdsDeleteError(Exception):
    """Raised when an RDS resource was not deleted in time."""

    def __init__(self, name: str) -> None:
        super().__init__(f"RDS DB Instance: {name} was not deleted")
        self.name = name


def get_all_rds_instances(client: Any, exclude_after: datetime) -> list[str]:
    """Return the identifiers of instances created before ``exclude_after``.

    Instances without a creation time yet are left out.
    """
    result = client.describe_db_instances()
    return [
        database["DBInstanceIdentifier"]
        for database in result.get("DBInstances", [])
        if database.get("InstanceCreateTime") is not None and exclude_after > database["InstanceCreateTime"]
    ]


def nuke_all_rds_instances(client: Any, region: str, names: list[str]) -> list[str]:
    """Delete the given instances without final snapshots and wait for each to go.

    Failed delete requests are logged; a failure while waiting is raised.
    Returns the identifiers deleted.
    """
    if not names:
        logger.info("No RDS DB Instance to nuke in region %s", region)
        return []

    logger.info("Deleting all RDS Instances in region %s", region)
    deleted: list[str] = []
    for name in names:
        try:
            client.delete_db_instance(DBInstanceIdentifier=name, SkipFinalSnapshot=True)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s: %s", name, exc)
        else:
            deleted.append(name)
            logger.info("Deleted RDS DB Instance: %s", name)

    if deleted:
        waiter = client.get_waiter("db_instance_deleted")
        for name in deleted:
            try:
                waiter.wait(DBInstanceIdentifier=name)
            except Exception as exc:
                logger.error("[Failed] %s", exc)
                raise

    logger.info("[OK] %d RDS DB Instance(s) deleted in %s", len(deleted), region)
    return deleted


@dataclass
class DBInstances:
    """All RDS database instances found in a region."""

    instance_names: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "rds"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The identifiers of the instances."""
        return self.instance_names

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given instances using a client from the session."""
        return nuke_all_rds_instances(session.client("rds"), session.region_name, list(identifiers))