"""Finding and deleting EKS clusters together with their managed compute."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

logger = logging.getLogger(__name__)

# Deletions run one thread per cluster; beyond this many the API is likely to throttle.
_MAX_CONCURRENT_DELETES = 100


class TooManyEKSClustersError(Exception):
    """Raised when more clusters are requested for deletion than can be handled at once."""

    def __init__(self) -> None:
        super().__init__("Too many EKS Clusters requested at once.")


def _list_all(call: Callable[..., dict[str, Any]], key: str, **kwargs: Any) -> list[str]:
    items: list[str] = []
    token: str | None = None
    while True:
        extra = {"nextToken": token} if token else {}
        page = call(**kwargs, **extra)
        items.extend(page.get(key, []))
        token = page.get("nextToken")
        if not token:
            return items


def filter_out_recent_eks_clusters(client: Any, cluster_names: list[str], exclude_after: datetime) -> list[str]:
    """Keep the names of clusters created before ``exclude_after``."""
    kept: list[str] = []
    for name in cluster_names:
        cluster = client.describe_cluster(name=name)["cluster"]
        if exclude_after > cluster["createdAt"]:
            kept.append(cluster["name"])
    return kept


def get_all_eks_clusters(client: Any, exclude_after: datetime) -> list[str]:
    """Return the names of all clusters created before ``exclude_after``."""
    names = list(client.list_clusters().get("clusters", []))
    return filter_out_recent_eks_clusters(client, names, exclude_after)


def schedule_delete_managed_node_groups(client: Any, cluster_name: str) -> tuple[list[str], list[Exception]]:
    """Request deletion of every managed node group of a cluster without waiting.

    Returns the node groups scheduled for deletion and the errors of those
    that could not be. A failure to list the node groups is raised.
    """
    node_groups = _list_all(client.list_nodegroups, "nodegroups", clusterName=cluster_name)
    scheduled: list[str] = []
    errors: list[Exception] = []
    for node_group in node_groups:
        try:
            client.delete_nodegroup(clusterName=cluster_name, nodegroupName=node_group)
        except Exception as exc:  # noqa: BLE001 - collected and reported together
            logger.error(
                "[Failed] Failed deleting Node Group %s associated with cluster %s: %s",
                node_group,
                cluster_name,
                exc,
            )
            errors.append(exc)
        else:
            scheduled.append(node_group)
    return scheduled, errors


def delete_fargate_profiles(client: Any, cluster_name: str) -> None:
    """Delete every Fargate profile of a cluster, one at a time.

    Only one profile may be deleted at a time, so each deletion is awaited
    before the next. Every profile is attempted; the failures are raised
    together as an :class:`ExceptionGroup`.
    """
    profiles = _list_all(client.list_fargate_profiles, "fargateProfileNames", clusterName=cluster_name)
    errors: list[Exception] = []
    waiter = client.get_waiter("fargate_profile_deleted") if profiles else None
    for profile in profiles:
        try:
            client.delete_fargate_profile(clusterName=cluster_name, fargateProfileName=profile)
        except Exception as exc:  # noqa: BLE001 - collected and reported together
            logger.error(
                "[Failed] Failed deleting Fargate Profile %s associated with cluster %s: %s",
                profile,
                cluster_name,
                exc,
            )
            errors.append(exc)
            continue
        try:
            waiter.wait(clusterName=cluster_name, fargateProfileName=profile)
        except Exception as exc:  # noqa: BLE001 - collected and reported together
            logger.error(
                "[Failed] Failed waiting for Fargate Profile %s associated with cluster %s to be deleted: %s",
                profile,
                cluster_name,
                exc,
            )
            errors.append(exc)
        else:
            logger.info("Deleted Fargate Profile %s associated with cluster %s", profile, cluster_name)
    if errors:
        raise ExceptionGroup(f"failed deleting Fargate profiles of cluster {cluster_name}", errors)


def delete_eks_cluster(client: Any, cluster_name: str) -> None:
    """Delete a cluster's node groups and Fargate profiles, then the cluster itself.

    The cluster is only requested for deletion once all its sub-resources are
    gone; otherwise the sub-resource errors are raised as an :class:`ExceptionGroup`.
    """
    errors: list[Exception] = []
    try:
        scheduled, delete_errors = schedule_delete_managed_node_groups(client, cluster_name)
    except Exception as exc:  # noqa: BLE001 - collected and reported together
        scheduled, delete_errors = [], [exc]
    errors.extend(delete_errors)

    try:
        delete_fargate_profiles(client, cluster_name)
    except ExceptionGroup as group:
        errors.extend(group.exceptions)
    except Exception as exc:  # noqa: BLE001 - collected and reported together
        errors.append(exc)

    if scheduled:
        waiter = client.get_waiter("nodegroup_deleted")
        for node_group in scheduled:
            try:
                waiter.wait(clusterName=cluster_name, nodegroupName=node_group)
            except Exception as exc:  # noqa: BLE001 - collected and reported together
                logger.error(
                    "[Failed] Failed waiting for Node Group %s associated with cluster %s to be deleted: %s",
                    node_group,
                    cluster_name,
                    exc,
                )
                errors.append(exc)
            else:
                logger.info("Deleted Node Group %s associated with cluster %s", node_group, cluster_name)

    if errors:
        raise ExceptionGroup(f"failed deleting sub-resources of EKS cluster {cluster_name}", errors)

    try:
        client.delete_cluster(name=cluster_name)
    except Exception as exc:
        logger.error("[Failed] Failed deleting EKS cluster %s: %s", cluster_name, exc)
        raise


def wait_until_eks_clusters_deleted(client: Any, cluster_names: list[str]) -> list[str]:
    """Wait for each cluster to disappear; return those confirmed deleted."""
    waiter = client.get_waiter("cluster_deleted")
    deleted: list[str] = []
    for name in cluster_names:
        try:
            waiter.wait(name=name)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] Failed waiting for EKS cluster to be deleted %s: %s", name, exc)
        else:
            logger.info("Deleted EKS cluster: %s", name)
            deleted.append(name)
    return deleted


def nuke_all_eks_clusters(client: Any, region: str, cluster_names: list[str]) -> list[str]:
    """Delete the given clusters concurrently and wait for them to disappear.

    Raises :class:`TooManyEKSClustersError` for more than 100 clusters and an
    :class:`ExceptionGroup` when any cluster could not be deleted. Returns the
    names of the clusters confirmed deleted.
    """
    if not cluster_names:
        logger.info("No EKS clusters to nuke in region %s", region)
        return []

    if len(cluster_names) > _MAX_CONCURRENT_DELETES:
        logger.error(
            "Nuking too many EKS Clusters at once (100): halting to avoid hitting AWS API rate limiting"
        )
        raise TooManyEKSClustersError()

    logger.info("Deleting %d EKS clusters in region %s", len(cluster_names), region)
    with ThreadPoolExecutor(max_workers=len(cluster_names)) as pool:
        futures = [pool.submit(delete_eks_cluster, client, name) for name in cluster_names]
        outcomes = [future.exception() for future in futures]

    errors = [exc for exc in outcomes if exc is not None]
    for exc in errors:
        logger.error("[Failed] %s", exc)
    if errors:
        raise ExceptionGroup("failed deleting EKS clusters", errors)

    deleted = wait_until_eks_clusters_deleted(client, cluster_names)
    logger.info("[OK] %d of %d EKS cluster(s) deleted in %s", len(deleted), len(cluster_names), region)
    return deleted


@dataclass
class EKSClusters:
    """All EKS clusters found in a region."""

    clusters: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "ekscluster"
    # Each cluster deletion makes many calls in parallel, so batches stay small.
    max_batch_size: ClassVar[int] = 10

    @property
    def resource_identifiers(self) -> list[str]:
        """The names of the collected clusters."""
        return self.clusters

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given clusters using a client from the session."""
        return nuke_all_eks_clusters(session.client("eks"), session.region_name, list(identifiers))