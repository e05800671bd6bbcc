"""Finding and deleting Lambda functions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cloudsweep.common import ResourceFilter, _filter_or_default

logger = logging.getLogger(__name__)

# The form in which the API reports a function's last modification time.
LAST_MODIFIED_LAYOUT = "%Y-%m-%dT%H:%M:%S.%f%z"


class LambdaDeleteError(Exception):
    """Raised when a Lambda function was not deleted."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Lambda Function: {name} was not deleted")
        self.name = name


def should_include_lambda_function(
    function: dict[str, Any] | None,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
) -> bool:
    """Decide whether a function was last modified early enough and its name passes the filter.

    Functions whose modification time cannot be read are left out.
    """
    if function is None:
        return False
    last_modified = function.get("LastModified") or ""
    name = function.get("FunctionName") or ""
    try:
        modified = datetime.strptime(last_modified, LAST_MODIFIED_LAYOUT)
    except ValueError:
        logger.warning(
            "Could not parse last modified timestamp (%s) of Lambda function %s. Excluding from delete.",
            last_modified,
            name,
        )
        return False
    if exclude_after < modified:
        return False
    return _filter_or_default(name_filter).matches(name)


def get_all_lambda_functions(
    client: Any,
    exclude_after: datetime,
    name_filter: ResourceFilter | None,
    batch_size: int,
) -> list[str]:
    """Return the names of functions that should be deleted, listing ``batch_size`` per page."""
    functions: list[dict[str, Any]] = []
    marker: str | None = None
    while True:
        kwargs: dict[str, Any] = {"MaxItems": batch_size}
        if marker:
            kwargs["Marker"] = marker
        page = client.list_functions(**kwargs)
        functions.extend(page.get("Functions", []))
        marker = page.get("NextMarker")
        if not marker:
            break
    return [
        function["FunctionName"]
        for function in functions
        if should_include_lambda_function(function, exclude_after, name_filter)
    ]


def nuke_all_lambda_functions(client: Any, region: str, names: list[str]) -> list[str]:
    """Delete every given function; failures are logged. Returns those deleted."""
    if not names:
        logger.info("No Lambda Functions to nuke in region %s", region)
        return []

    logger.info("Deleting all Lambda Functions in region %s", region)
    deleted: list[str] = []
    for name in names:
        try:
            client.delete_function(FunctionName=name)
        except Exception as exc:  # noqa: BLE001 - failures are logged and skipped
            logger.error("[Failed] %s: %s", name, exc)
        else:
            deleted.append(name)
            logger.info("Deleted Lambda Function: %s", name)

    logger.info("[OK] %d Lambda Function(s) deleted in %s", len(deleted), region)
    return deleted


@dataclass
class LambdaFunctions:
    """All Lambda functions found in a region."""

    lambda_function_names: list[str] = field(default_factory=list)

    resource_name: ClassVar[str] = "lambda"
    max_batch_size: ClassVar[int] = 200

    @property
    def resource_identifiers(self) -> list[str]:
        """The names of the functions."""
        return self.lambda_function_names

    def nuke(self, session: Any, identifiers: list[str]) -> list[str]:
        """Delete the given functions using a client from the session."""
        return nuke_all_lambda_functions(session.client("lambda"), session.region_name, list(identifiers))