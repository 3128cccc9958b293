"""Deterministic store failure classification for scheduler branching.

Classification happens once, at the store boundary; the scheduler only ever
branches on :class:`StoreErrorKind`.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import exc as sa_exc

from outreach_queue.tasks.errors import StoreErrorKind

STORE_FAILURE_CLASSIFIER_VERSION = 1

_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "jwt expired",
    "invalid token",
    "unauthorized",
    "permission denied",
    "password authentication failed",
    "authentication",
)
_THROTTLED_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "too many requests",
    "too many connections",
    "429",
    "database is locked",
    "database table is locked",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "fetch failed",
    "socket",
    "und_err",
    "connection reset",
    "connection refused",
    "could not connect",
    "server closed the connection",
    "temporarily unavailable",
    "temporary failure",
    "network error",
    "could not resolve host",
    "timed out",
)


@dataclass(slots=True)
class StoreFailureClassification:
    """Normalized failure classification result."""

    kind: StoreErrorKind
    matched_rule: str
    matched_pattern: str | None


def classify_store_failure(error: BaseException) -> StoreFailureClassification:
    """Classify a driver/ORM exception into a structured store error kind."""

    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return StoreFailureClassification(
            kind=StoreErrorKind.TRANSIENT,
            matched_rule="connection_invalidated",
            matched_pattern=None,
        )
    if isinstance(error, (sa_exc.DisconnectionError, sa_exc.TimeoutError)):
        return StoreFailureClassification(
            kind=StoreErrorKind.TRANSIENT,
            matched_rule="pool_or_disconnect",
            matched_pattern=None,
        )

    haystack = str(error).lower()

    pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
    if pattern is not None:
        return StoreFailureClassification(
            kind=StoreErrorKind.AUTH_EXPIRED,
            matched_rule="access_or_auth",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _THROTTLED_PATTERNS)
    if pattern is not None:
        return StoreFailureClassification(
            kind=StoreErrorKind.THROTTLED,
            matched_rule="throttled",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _TRANSIENT_PATTERNS)
    if pattern is not None or isinstance(error, OSError):
        return StoreFailureClassification(
            kind=StoreErrorKind.TRANSIENT,
            matched_rule="os_error" if pattern is None else "generic_transient",
            matched_pattern=pattern,
        )

    return StoreFailureClassification(
        kind=StoreErrorKind.PERMANENT,
        matched_rule="fallback_permanent",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
