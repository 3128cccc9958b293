"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from outreach_queue.tasks.credentials import TokenStore
from outreach_queue.tasks.models import OwnerScope
from outreach_queue.tasks.repository import JobStore


@pytest.fixture()
def credentials() -> TokenStore:
    tokens = TokenStore()
    tokens.set_tokens("test-token", user_id="user-a")
    return tokens


@pytest.fixture()
def scope() -> OwnerScope:
    return OwnerScope(workspace_id="ws-a", user_id="user-a")


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "queue.db"


@pytest.fixture()
def store(db_path: Path, credentials: TokenStore) -> Iterator[JobStore]:
    job_store = JobStore.for_sqlite(db_path, credentials=credentials)
    job_store.init_schema()
    yield job_store
    job_store.close()

