"""Finding and deleting ECS services."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import ResourceFilter, _filter_or_default, split

logger = logging.getLogger(__name__)

# The most services a single describe call accepts.
_DESCRIBE_BATCH = 10


def get_all_ecs_clusters(client: Any) -> list[str]:
    """Return the ARNs of every ECS cluster, following pagination."""
    cluster_arns: list[str] = []
    token: str | None = None
    while True:
        kwargs = {"nextToken": token} if token else {}
        result = client.list_clusters(**kwargs)
        cluster_arns.extend(result.get("clusterArns", []))
        token = result.get("nextToken")
        if not token:
            return cluster_arns


def should_include_ecs_service(
    service: dict[str, Any] | None,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> bool:
    """Decide whether a described service is old enough and passes the name filter."""
    if service is None:
        return False
    created_at = service.get("createdAt")
    if created_at is not None and exclude_after < created_at:
        return False
    return _filter_or_default(name_filter).matches(service.get("serviceName") or "")


def filter_out_recent_services(
    client: Any,
    cluster_arn: str,
    service_arns: list[str],
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> list[str]:
    """Describe services in batches and keep the ARNs of those that should be deleted."""
    kept: list[str] = []
    for batch in split(service_arns, _DESCRIBE_BATCH):
        result = client.describe_services(cluster=cluster_arn, services=batch)
        kept.extend(
            service["serviceArn"]
            for service in result.get("services", [])
            if should_include_ecs_service(service, exclude_after, name_filter)
        )
    return kept


def get_all_ecs_services(
    client: Any,
    cluster_arns: list[str],
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> tuple[list[str], dict[str, str]]:
    """Return the service ARNs to delete and a map from each service to its cluster."""
    service_cluster_map: dict[str, str] = {}
    service_arns: list[str] = []
    for cluster_arn in cluster_arns:
        result = client.list_services(cluster=cluster_arn)
        kept = filter_out_recent_services(
            client, cluster_arn, list(result.get("serviceArns", [])), exclude_after, name_filter
        )
        for arn in kept:
            service_cluster_map[arn] = cluster_arn
        service_arns.extend(kept)
    return service_arns, service_cluster_map


def drain_ecs_services(client: Any, service_cluster_map: dict[str, str], service_arns: list[str]) -> list[str]:
    """Scale every service down to zero; return those whose drain was accepted."""
    requested: list[str] = []
    for arn in service_arns:
        try:
            client.update_service(cluster=service_cluster_map.get(arn, ""), service=arn, desiredCount=0)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] Failed to drain service %s: %s", arn, exc)
        else:
            requested.append(arn)
    return requested


def _wait_each(
    client: Any,
    waiter_name: str,
    service_cluster_map: dict[str, str],
    service_arns: list[str],
    failure: str,
    success: str,
) -> list[str]:
    waiter = client.get_waiter(waiter_name)
    done: list[str] = []
    for arn in service_arns:
        try:
            waiter.wait(cluster=service_cluster_map.get(arn, ""), services=[arn])
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s %s: %s", failure, arn, exc)
        else:
            logger.info("%s: %s", success, arn)
            done.append(arn)
    return done


def wait_until_services_drained(
    client: Any, service_cluster_map: dict[str, str], service_arns: list[str]
) -> list[str]:
    """Wait for each service to become stable; return those that did."""
    return _wait_each(
        client,
        "services_stable",
        service_cluster_map,
        service_arns,
        "Failed waiting for service to be stable",
        "Drained service",
    )


def delete_ecs_services(client: Any, service_cluster_map: dict[str, str], service_arns: list[str]) -> list[str]:
    """Request deletion of every service; return those accepted."""
    requested: list[str] = []
    for arn in service_arns:
        try:
            client.delete_service(cluster=service_cluster_map.get(arn, ""), service=arn)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] Failed deleting service %s: %s", arn, exc)
        else:
            requested.append(arn)
    return requested


def wait_until_services_deleted(
    client: Any, service_cluster_map: dict[str, str], service_arns: list[str]
) -> list[str]:
    """Wait for each service to become inactive; return those that did."""
    return _wait_each(
        client,
        "services_inactive",
        service_cluster_map,
        service_arns,
        "Failed waiting for service to be deleted",
        "Deleted service",
    )


def nuke_all_ecs_services(
    client: Any, region: str, service_cluster_map: dict[str, str], service_arns: list[str]
) -> list[str]:
    """Drain, then delete, the given services. Failures are logged, not raised.

    Returns the ARNs of the services confirmed deleted.
    """
    if not service_arns:
        logger.info("No ECS services to nuke in region %s", region)
        return []

    logger.info("Deleting %d ECS services in region %s", len(service_arns), region)
    drains = drain_ecs_services(client, service_cluster_map, service_arns)
    drained = wait_until_services_drained(client, service_cluster_map, drains)
    deletes = delete_ecs_services(client, service_cluster_map, drained)
    deleted = wait_until_services_deleted(client, service_cluster_map, deletes)
    logger.info("[OK] %d of %d ECS service(s) deleted in %s", len(deleted), len(service_arns), region)
    return deleted


@dataclass
class ECSServices:
    """All ECS services found in a region, with the cluster each belongs to."""

    services: list[str] = field(default_factory=list)
    service_cluster_map: dict[str, str] = field(default_factory=dict)

    resource_name: ClassVar[str] = "ecsserv"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The ARNs of the collected services."""
        return self.services

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given services using a client from the session."""
        return nuke_all_ecs_services(
            session.client("ecs"), session.region_name, self.service_cluster_map, list(identifiers)
        )