"""Common helpers for storage repositories."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def sqlite_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def to_db_datetime(value: datetime, *, naive: bool = True) -> datetime:
    """Convert to UTC as persisted in the queue table.

    SQLite keeps naive UTC. Other backends get aware UTC values so the
    session time zone cannot shift them.
    """

    aware = to_utc_aware_datetime(value)
    return aware.replace(tzinfo=None) if naive else aware


def to_utc_aware_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def build_engine(*, db_url: str, busy_timeout_ms: int) -> Engine:
    """Build SQLAlchemy engine; SQLite URLs get a consistent WAL/busy-timeout policy."""

    if not db_url.startswith("sqlite"):
        return create_engine(db_url, pool_pre_ping=True)

    engine = create_engine(
        db_url,
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )
    event.listen(
        engine,
        "connect",
        lambda dbapi_connection, _: _apply_sqlite_pragmas(
            dbapi_connection,
            busy_timeout_ms=busy_timeout_ms,
        ),
    )
    return engine


def _apply_sqlite_pragmas(dbapi_connection: sqlite3.Connection, *, busy_timeout_ms: int) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    cursor.close()
