"""Finding and deleting OpenSearch domains."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from cloudsweep.common import (
    FIRST_SEEN_TAG_KEY,
    FatalError,
    ResourceFilter,
    _filter_or_default,
    format_timestamp_tag,
    parse_timestamp_tag,
    retry,
)

logger = logging.getLogger(__name__)

# Deletions run one thread per domain; beyond this many the API is likely to throttle.
_MAX_CONCURRENT_DELETES = 100
# Wait up to five minutes for deletion: 30 checks, 10 seconds apart.
_WAIT_ATTEMPTS = 30
_WAIT_INTERVAL = 10.0


class TooManyOpenSearchDomainsError(Exception):
    """Raised when more domains are requested for deletion than can be handled at once."""

    def __init__(self) -> None:
        super().__init__("Too many OpenSearch Domains requested at once.")


def get_all_active_opensearch_domains(client: Any) -> list[dict[str, Any]]:
    """Return the status of every domain that is created and not deleted."""
    try:
        listed = client.list_domain_names().get("DomainNames", [])
    except Exception:
        logger.error("Error getting all OpenSearch domains")
        raise
    names = [domain["DomainName"] for domain in listed]
    if not names:
        return []

    try:
        described = client.describe_domains(DomainNames=names)
    except Exception:
        logger.error("Error describing Domains %s", names)
        raise
    return [
        domain
        for domain in described.get("DomainStatusList", [])
        if domain.get("Created") and not domain.get("Deleted")
    ]


def should_include_opensearch_domain(
    domain: dict[str, Any] | None,
    first_seen: datetime,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> bool:
    """Decide whether a domain was first seen early enough and its name passes the filter."""
    if domain is None:
        return False
    if exclude_after < first_seen:
        return False
    return _filter_or_default(name_filter).matches(domain.get("DomainName") or "")


def tag_opensearch_domain_when_first_seen(client: Any, domain_arn: str, timestamp: datetime) -> None:
    """Tag a domain with the time it was first seen."""
    logger.debug("Tagging the OpenSearch Domain with ARN %s with first seen timestamp", domain_arn)
    client.add_tags(
        ARN=domain_arn,
        TagList=[{"Key": FIRST_SEEN_TAG_KEY, "Value": format_timestamp_tag(timestamp)}],
    )


def get_first_seen_opensearch_domain_tag(client: Any, domain_arn: str) -> datetime | None:
    """Return the first-seen time stored on a domain, or None if it has none."""
    try:
        tags = client.list_tags(ARN=domain_arn).get("TagList", [])
    except Exception:
        logger.error("Error getting the tags for OpenSearch Domain with ARN %s", domain_arn)
        raise
    for tag in tags:
        if tag.get("Key") == FIRST_SEEN_TAG_KEY:
            try:
                return parse_timestamp_tag(tag.get("Value") or "")
            except ValueError:
                logger.error("Error parsing the first seen tag for OpenSearch Domain with ARN %s", domain_arn)
                raise
    return None


def get_opensearch_domains_to_nuke(
    client: Any, exclude_after: datetime, name_filter: ResourceFilter | None
) -> list[str]:
    """Return the names of active domains that should be deleted.

    Domains have no creation time, so a first-seen tag stands in for one.
    Untagged domains are tagged with the current time and left out this run.
    """
    to_nuke: list[str] = []
    for domain in get_all_active_opensearch_domains(client):
        arn = domain["ARN"]
        first_seen = get_first_seen_opensearch_domain_tag(client, arn)
        if first_seen is None:
            try:
                tag_opensearch_domain_when_first_seen(client, arn, datetime.now(timezone.utc))
            except Exception:
                logger.error("Error tagging the OpenSearch Domain with ARN %s", arn)
                raise
        elif should_include_opensearch_domain(domain, first_seen, exclude_after, name_filter):
            to_nuke.append(domain["DomainName"])
    return to_nuke


def _delete_opensearch_domain(client: Any, domain_name: str) -> None:
    client.delete_domain(DomainName=domain_name)


def nuke_all_opensearch_domains(client: Any, region: str, identifiers: list[str]) -> list[str]:
    """Delete the given domains concurrently and wait until they are gone.

    Raises :class:`TooManyOpenSearchDomainsError` for more than 100 domains,
    an :class:`ExceptionGroup` when any delete request failed, and
    :class:`TimeoutError` when they are not gone within five minutes.
    """
    if not identifiers:
        logger.info("No OpenSearch Domains to nuke in region %s", region)
        return []

    if len(identifiers) > _MAX_CONCURRENT_DELETES:
        logger.error(
            "Nuking too many OpenSearch Domains at once (100): halting to avoid hitting AWS API rate limiting"
        )
        raise TooManyOpenSearchDomainsError()

    logger.info("Deleting OpenSearch Domains in region %s", region)
    with ThreadPoolExecutor(max_workers=len(identifiers)) as pool:
        futures = [pool.submit(_delete_opensearch_domain, client, name) for name in identifiers]
        outcomes = [future.exception() for future in futures]

    errors = [exc for exc in outcomes if exc is not None]
    for exc in errors:
        logger.error("[Failed] %s", exc)
    if errors:
        raise ExceptionGroup("failed deleting OpenSearch domains", errors)

    def check_deleted() -> None:
        try:
            response = client.describe_domains(DomainNames=identifiers)
        except Exception as exc:
            raise FatalError(exc) from exc
        if response.get("DomainStatusList"):
            raise RuntimeError("Not all OpenSearch domains are deleted.")

    retry(check_deleted, "Waiting for all OpenSearch Domains to be deleted.", _WAIT_ATTEMPTS, _WAIT_INTERVAL)
    for name in identifiers:
        logger.info("[OK] OpenSearch Domain %s was deleted in %s", name, region)
    return list(identifiers)


@dataclass
class OpenSearchDomains:
    """All OpenSearch domains found in a region."""

    domain_names: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "opensearchdomain"
    # Domains are deleted in parallel, one call each, so batches stay small.
    max_batch_size: ClassVar[int] = 10

    @property
    def resource_identifiers(self) -> list[str]:
        """The names of the domains."""
        return self.domain_names

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given domains using a client from the session."""
        return nuke_all_opensearch_domains(session.client("opensearch"), session.region_name, list(identifiers))