from __future__ import annotations

import sqlite3

import allure
import pytest
from sqlalchemy import exc as sa_exc

from outreach_queue.tasks.errors import StoreErrorKind
from outreach_queue.tasks.failure_classifier import (
    STORE_FAILURE_CLASSIFIER_VERSION,
    classify_store_failure,
)

pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("Store Failure Classification"),
]


def _operational(message: str, *, invalidated: bool = False) -> sa_exc.OperationalError:
    return sa_exc.OperationalError(
        "SELECT 1",
        {},
        sqlite3.OperationalError(message),
        connection_invalidated=invalidated,
    )


def test_classifier_version_is_stable() -> None:
    assert STORE_FAILURE_CLASSIFIER_VERSION == 1


def test_invalidated_connection_is_transient() -> None:
    classified = classify_store_failure(_operational("server went away", invalidated=True))
    assert classified.kind == StoreErrorKind.TRANSIENT
    assert classified.matched_rule == "connection_invalidated"
    assert classified.matched_pattern is None


def test_pool_timeout_is_transient() -> None:
    classified = classify_store_failure(sa_exc.TimeoutError("QueuePool limit reached"))
    assert classified.kind == StoreErrorKind.TRANSIENT
    assert classified.matched_rule == "pool_or_disconnect"


def test_locked_database_is_throttled() -> None:
    classified = classify_store_failure(_operational("database is locked"))
    assert classified.kind == StoreErrorKind.THROTTLED
    assert classified.matched_rule == "throttled"
    assert classified.matched_pattern == "database is locked"


def test_expired_token_maps_to_auth() -> None:
    classified = classify_store_failure(RuntimeError("JWT expired"))
    assert classified.kind == StoreErrorKind.AUTH_EXPIRED
    assert classified.matched_rule == "access_or_auth"
    assert classified.matched_pattern == "jwt expired"


@pytest.mark.parametrize(
    ("message", "pattern"),
    [
        ("TypeError: fetch failed", "fetch failed"),
        ("UND_ERR_CONNECT_TIMEOUT", "und_err"),
        ("Connection reset by peer", "connection reset"),
        ("socket hang up", "socket"),
    ],
)
def test_network_messages_are_transient(message: str, pattern: str) -> None:
    classified = classify_store_failure(_operational(message))
    assert classified.kind == StoreErrorKind.TRANSIENT
    assert classified.matched_rule == "generic_transient"
    assert classified.matched_pattern == pattern


def test_os_error_without_pattern_is_transient() -> None:
    classified = classify_store_failure(OSError("No route to host"))
    assert classified.kind == StoreErrorKind.TRANSIENT
    assert classified.matched_rule == "os_error"


def test_classifier_falls_back_to_permanent() -> None:
    classified = classify_store_failure(_operational("no such table: task_queue"))
    assert classified.kind == StoreErrorKind.PERMANENT
    assert classified.matched_rule == "fallback_permanent"
    assert classified.matched_pattern is None
