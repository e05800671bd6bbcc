"""Shared helpers: name filters, API error handling, batching, timestamps and retries."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tag placed on resources that carry no creation time of their own. The next run
# reads it back to decide whether the resource is old enough to be deleted.
FIRST_SEEN_TAG_KEY = "cloudsweep-first-seen"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class ApiError(Exception):
    """An error reported by a cloud API, identified by its error code."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


class FatalError(Exception):
    """Raised inside a retried action to stop retrying at once."""

    def __init__(self, underlying: BaseException) -> None:
        super().__init__(str(underlying))
        self.underlying = underlying


def error_code(exc: BaseException) -> str | None:
    """Return the API error code carried by an exception, if any."""
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        return code
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        error = response.get("Error")
        if isinstance(error, dict):
            value = error.get("Code")
            return value if isinstance(value, str) else None
    return None


def _any_match(name: str, patterns: Iterable[str | re.Pattern[str]]) -> bool:
    return any(re.search(pattern, name) for pattern in patterns)


def should_include(
    name: str,
    include_patterns: Sequence[str | re.Pattern[str]],
    exclude_patterns: Sequence[str | re.Pattern[str]],
) -> bool:
    """Decide whether a resource name passes the include and exclude rules.

    With no rules every name passes. A name matching an exclude rule never
    passes. When include rules exist, a name must match one of them.
    """
    if not include_patterns and not exclude_patterns:
        return True
    if exclude_patterns and _any_match(name, exclude_patterns):
        return False
    if include_patterns:
        return _any_match(name, include_patterns)
    return True


@dataclass(frozen=True)
class ResourceFilter:
    """Include and exclude name patterns for one resource type."""

    include: tuple[str | re.Pattern[str], ...] = ()
    exclude: tuple[str | re.Pattern[str], ...] = ()

    def matches(self, name: str) -> bool:
        """True when the name passes this filter."""
        return should_include(name, self.include, self.exclude)


def split(items: Sequence[T], size: int) -> list[list[T]]:
    """Cut a sequence into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


def format_timestamp_tag(moment: datetime) -> str:
    """Render a timestamp as an RFC 3339 UTC string for use as a tag value."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp_tag(value: str) -> datetime:
    """Parse a tag value written by :func:`format_timestamp_tag`."""
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def retry(
    action: Callable[[], T],
    description: str,
    max_attempts: int,
    sleep_between: float,
) -> T:
    """Call ``action`` until it succeeds, up to ``max_attempts`` times.

    A :class:`FatalError` stops retrying and raises the error it wraps. When
    every attempt fails a :class:`TimeoutError` is raised.
    """
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        logger.info("%s", description)
        try:
            return action()
        except FatalError as fatal:
            if isinstance(fatal.underlying, Exception):
                raise fatal.underlying from fatal
            raise
        except Exception as exc:  # noqa: BLE001 - any failure is retried
            last_error = exc
            logger.info("%s returned an error: %s. Attempt %d of %d.", description, exc, attempt, max_attempts)
            if attempt < max_attempts:
                time.sleep(sleep_between)
    raise TimeoutError(f"'{description}' unsuccessful after {max_attempts} retries") from last_error


def _filter_or_default(name_filter: ResourceFilter | None) -> ResourceFilter:
    return name_filter if name_filter is not None else ResourceFilter()


def _get(mapping: dict[str, Any] | None, key: str, default: Any = None) -> Any:
    return default if mapping is None else mapping.get(key, default)