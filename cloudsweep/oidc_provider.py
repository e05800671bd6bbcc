"""Finding and deleting IAM OpenID Connect providers."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import ResourceFilter, _filter_or_default, error_code

logger = logging.getLogger(__name__)

# Deletions run one thread per provider; beyond this many the API is likely to throttle.
_MAX_CONCURRENT_DELETES = 100


class TooManyOIDCProvidersError(Exception):
    """Raised when more providers are requested for deletion than can be handled at once."""

    def __init__(self) -> None:
        super().__init__("Too many OIDC Providers requested at once.")


@dataclass(frozen=True)
class OIDCProvider:
    """The details of a provider needed to decide whether it is deleted."""

    arn: str
    create_time: datetime | None
    provider_url: str


def get_oidc_provider_detail(client: Any, provider_arn: str) -> OIDCProvider | None:
    """Fetch one provider's details.

    Returns None when the provider vanished between listing and fetching.
    """
    try:
        response = client.get_open_id_connect_provider(OpenIDConnectProviderArn=provider_arn)
    except Exception as exc:
        if error_code(exc) == "NoSuchEntity":
            return None
        raise
    return OIDCProvider(
        arn=provider_arn,
        create_time=response.get("CreateDate"),
        provider_url=response.get("Url") or "",
    )


def get_all_oidc_provider_details(client: Any, provider_arns: list[str]) -> list[OIDCProvider]:
    """Fetch the details of all given providers concurrently.

    Providers that no longer exist are left out; any other failures are raised
    together as an :class:`ExceptionGroup`.
    """
    if not provider_arns:
        return []
    with ThreadPoolExecutor(max_workers=len(provider_arns)) as pool:
        futures = [pool.submit(get_oidc_provider_detail, client, arn) for arn in provider_arns]
        outcomes = [(future.exception(), future) for future in futures]

    errors = [exc for exc, _ in outcomes if exc is not None]
    if errors:
        raise ExceptionGroup("failed fetching OIDC provider details", errors)
    return [provider for _, future in outcomes if (provider := future.result()) is not None]


def should_include_oidc_provider(
    provider: OIDCProvider, exclude_after: datetime, name_filter: ResourceFilter | None
) -> bool:
    """Decide whether a provider is old enough and its URL passes the name filter."""
    if provider.create_time is not None and exclude_after < provider.create_time:
        return False
    return _filter_or_default(name_filter).matches(provider.provider_url)


def get_all_oidc_providers(client: Any, exclude_after: datetime, name_filter: ResourceFilter | None) -> list[str]:
    """Return the ARNs of providers that should be deleted."""
    listed = client.list_open_id_connect_providers().get("OpenIDConnectProviderList", [])
    arns = [provider["Arn"] for provider in listed]
    providers = get_all_oidc_provider_details(client, arns)
    return [
        provider.arn
        for provider in providers
        if should_include_oidc_provider(provider, exclude_after, name_filter)
    ]


def _delete_oidc_provider(client: Any, provider_arn: str) -> None:
    client.delete_open_id_connect_provider(OpenIDConnectProviderArn=provider_arn)


def nuke_all_oidc_providers(client: Any, identifiers: list[str]) -> list[str]:
    """Delete the given providers concurrently.

    Raises :class:`TooManyOIDCProvidersError` for more than 100 providers and
    an :class:`ExceptionGroup` when any deletion failed. Returns the ARNs deleted.
    """
    if not identifiers:
        logger.info("No OIDC Providers to nuke")
        return []

    if len(identifiers) > _MAX_CONCURRENT_DELETES:
        logger.error("Nuking too many OIDC Providers at once (100): halting to avoid hitting AWS API rate limiting")
        raise TooManyOIDCProvidersError()

    logger.info("Deleting OIDC Providers")
    with ThreadPoolExecutor(max_workers=len(identifiers)) as pool:
        futures = [pool.submit(_delete_oidc_provider, client, arn) for arn in identifiers]
        outcomes = [future.exception() for future in futures]

    errors = [exc for exc in outcomes if exc is not None]
    for exc in errors:
        logger.error("[Failed] %s", exc)
    if errors:
        raise ExceptionGroup("failed deleting OIDC providers", errors)

    for arn in identifiers:
        logger.info("[OK] OIDC Provider %s was deleted", arn)
    return list(identifiers)


@dataclass
class OIDCProviders:
    """All OpenID Connect providers in the account."""

    provider_arns: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "oidcprovider"
    # Providers are deleted in parallel, one call each, so batches stay small.
    max_batch_size: ClassVar[int] = 10

    @property
    def resource_identifiers(self) -> list[str]:
        """The ARNs of the providers."""
        return self.provider_arns

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given providers using a client from the session."""
        return nuke_all_oidc_providers(session.client("iam"), list(identifiers))