"""Finding and deleting ElastiCache clusters."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import ResourceFilter, _filter_or_default

logger = logging.getLogger(__name__)


def should_include_elasticache_cluster(
    cluster: dict[str, Any] | None,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> bool:
    """Decide whether a cluster is old enough and its id passes the name filter."""
    if cluster is None:
        return False
    created = cluster.get("CacheClusterCreateTime")
    if created is not None and exclude_after < created:
        return False
    return _filter_or_default(name_filter).matches(cluster.get("CacheClusterId") or "")


def get_all_elasticache_clusters(
    client: Any, exclude_after: datetime, name_filter: ResourceFilter | None
) -> list[str]:
    """Return the ids of clusters that should be deleted."""
    result = client.describe_cache_clusters()
    return [
        cluster["CacheClusterId"]
        for cluster in result.get("CacheClusters", [])
        if should_include_elasticache_cluster(cluster, exclude_after, name_filter)
    ]


def nuke_all_elasticache_clusters(client: Any, region: str, cluster_ids: list[str]) -> list[str]:
    """Delete every given cluster and wait for each to go.

    Failures, whether deleting or waiting, are logged and not raised.
    Returns the ids whose deletion was accepted.
    """
    if not cluster_ids:
        logger.info("No Elasticache clusters to nuke in region %s", region)
        return []

    logger.info("Deleting %d Elasticache clusters in region %s", len(cluster_ids), region)
    deleted: list[str] = []
    for cluster_id in cluster_ids:
        try:
            client.delete_cache_cluster(CacheClusterId=cluster_id)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s", exc)
        else:
            deleted.append(cluster_id)
            logger.info("Deleted Elasticache cluster: %s", cluster_id)

    if deleted:
        logger.info("Confirming deletion of %d Elasticache clusters in region %s", len(deleted), region)
        waiter = client.get_waiter("cache_cluster_deleted")
        for cluster_id in deleted:
            try:
                waiter.wait(CacheClusterId=cluster_id)
            except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
                logger.error("[Failed] %s", exc)

    logger.info("[OK] %d Elasticache clusters deleted in %s", len(deleted), region)
    return deleted


@dataclass
class Elasticaches:
    """All ElastiCache clusters found in a region."""

    cluster_ids: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "elasticache"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The ids of the clusters."""
        return self.cluster_ids

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given clusters using a client from the session."""
        return nuke_all_elasticache_clusters(
            session.client("elasticache"), session.region_name, list(identifiers)
        )