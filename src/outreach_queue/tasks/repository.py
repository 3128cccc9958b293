"""Persistent queue store for background jobs."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlmodel import Session, col, select

from outreach_queue.storage.alembic_runner import upgrade_head
from outreach_queue.storage.common import (
    build_engine,
    sqlite_url,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from outreach_queue.storage.sqlmodel_models import JobRecord
from outreach_queue.tasks.credentials import CredentialProvider, has_usable_credential
from outreach_queue.tasks.errors import (
    JobNotFoundError,
    JobStateError,
    StoreError,
    StoreErrorKind,
    StoreWriteError,
)
from outreach_queue.tasks.failure_classifier import classify_store_failure
from outreach_queue.tasks.models import (
    TERMINAL_STATUSES,
    JobCreate,
    JobStatus,
    JobView,
    OwnerScope,
)

logger = logging.getLogger(__name__)


class JobStore:
    """Queue persistence facade backed by SQLModel.

    Every call is authorized by the credential provider first and every
    driver failure leaves this class as a :class:`StoreError` with a
    structured kind.
    """

    def __init__(
        self,
        db_url: str,
        *,
        credentials: CredentialProvider,
        busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_url = db_url
        self.credentials = credentials
        self.engine = build_engine(db_url=db_url, busy_timeout_ms=busy_timeout_ms)
        self.naive_datetimes = self.engine.dialect.name == "sqlite"

    @classmethod
    def for_sqlite(
        cls,
        db_path: Path,
        *,
        credentials: CredentialProvider,
        busy_timeout_ms: int = 5_000,
    ) -> JobStore:
        return cls(sqlite_url(db_path), credentials=credentials, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_url)

    def insert_jobs(self, scope: OwnerScope, jobs: Sequence[JobCreate]) -> list[JobView]:
        """Insert queued jobs in one transaction and return the created records."""

        now = self._db_datetime(utc_now())
        with self._guard("insert_jobs", write=True), Session(self.engine) as session:
            rows = [
                JobRecord(
                    workspace_id=scope.workspace_id,
                    user_id=scope.user_id,
                    task_type=job.task_type,
                    payload_json=_dump_json(job.payload),
                    status=JobStatus.QUEUED.value,
                    priority=job.priority,
                    created_at=now,
                    updated_at=now,
                )
                for job in jobs
            ]
            session.add_all(rows)
            session.commit()
            for row in rows:
                session.refresh(row)
            return [_to_job_view(row) for row in rows]

    def recover_stale(self, *, stale_before: datetime, error_message: str) -> int:
        """Fail every ``processing`` job started before ``stale_before``."""

        now = self._db_datetime(utc_now())
        with self._guard("recover_stale", write=True), Session(self.engine) as session:
            result = session.exec(
                sa_update(JobRecord)
                .where(
                    col(JobRecord.status) == JobStatus.PROCESSING.value,
                    col(JobRecord.started_at).is_not(None),
                    col(JobRecord.started_at) < self._db_datetime(stale_before),
                )
                .values(
                    status=JobStatus.FAILED.value,
                    error_message=error_message,
                    completed_at=now,
                    updated_at=now,
                ),
            )
            session.commit()
            return int(result.rowcount or 0)

    def select_next_queued(self) -> JobView | None:
        """Return the next eligible job without claiming it."""

        with self._guard("select_next_queued", write=False), Session(self.engine) as session:
            row = session.exec(
                select(JobRecord)
                .where(JobRecord.status == JobStatus.QUEUED.value)
                .order_by(
                    col(JobRecord.priority).desc(),
                    col(JobRecord.created_at).asc(),
                    col(JobRecord.id).asc(),
                )
                .limit(1),
            ).first()
            return _to_job_view(row) if row is not None else None

    def claim(self, job_id: int) -> bool:
        """Move a queued job to ``processing``; ``False`` if someone else got it first."""

        now = self._db_datetime(utc_now())
        return self._transition(
            "claim",
            job_id=job_id,
            expected=JobStatus.QUEUED,
            values={
                "status": JobStatus.PROCESSING.value,
                "started_at": now,
                "completed_at": None,
                "error_message": None,
                "updated_at": now,
            },
        )

    def complete(self, job_id: int, result: Any) -> bool:
        """Mark a processing job as completed with the handler result."""

        now = self._db_datetime(utc_now())
        return self._transition(
            "complete",
            job_id=job_id,
            expected=JobStatus.PROCESSING,
            values={
                "status": JobStatus.COMPLETED.value,
                "completed_at": now,
                "result_json": _dump_json(result),
                "error_message": None,
                "updated_at": now,
            },
        )

    def fail(self, job_id: int, error_message: str) -> bool:
        """Mark a processing job as failed."""

        now = self._db_datetime(utc_now())
        return self._transition(
            "fail",
            job_id=job_id,
            expected=JobStatus.PROCESSING,
            values={
                "status": JobStatus.FAILED.value,
                "completed_at": now,
                "error_message": error_message,
                "updated_at": now,
            },
        )

    def reset_for_retry(self, job_id: int) -> JobView:
        """Manual retry for completed/failed jobs; ``created_at`` is kept."""

        now = self._db_datetime(utc_now())
        with self._guard("reset_for_retry", write=True), Session(self.engine) as session:
            row = session.get(JobRecord, job_id)
            if row is None:
                raise JobNotFoundError(job_id)

            previous = JobStatus(row.status)
            if previous not in TERMINAL_STATUSES:
                raise JobStateError(
                    f"Only failed/completed jobs can be retried, got {row.status} (job_id={job_id}).",
                )
            result = session.exec(
                sa_update(JobRecord)
                .where(
                    col(JobRecord.id) == job_id,
                    col(JobRecord.status) == previous.value,
                )
                .values(
                    status=JobStatus.QUEUED.value,
                    started_at=None,
                    completed_at=None,
                    error_message=None,
                    result_json=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise JobStateError(
                    f"Job state changed concurrently while retrying (job_id={job_id}).",
                )
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def delete(self, job_id: int) -> None:
        """Remove a single job regardless of status."""

        with self._guard("delete", write=True), Session(self.engine) as session:
            result = session.exec(sa_delete(JobRecord).where(col(JobRecord.id) == job_id))
            if result.rowcount != 1:
                session.rollback()
                raise JobNotFoundError(job_id)
            session.commit()

    def delete_completed(self, scope: OwnerScope) -> int:
        """Bulk-delete completed jobs of one owner scope."""

        with self._guard("delete_completed", write=True), Session(self.engine) as session:
            result = session.exec(
                sa_delete(JobRecord).where(
                    col(JobRecord.workspace_id) == scope.workspace_id,
                    col(JobRecord.user_id) == scope.user_id,
                    col(JobRecord.status) == JobStatus.COMPLETED.value,
                ),
            )
            session.commit()
            return int(result.rowcount or 0)

    def list_jobs(
        self,
        scope: OwnerScope,
        *,
        limit: int = 50,
        status: JobStatus | None = None,
    ) -> list[JobView]:
        """List recent jobs of one owner scope, newest first."""

        with self._guard("list_jobs", write=False), Session(self.engine) as session:
            statement = (
                select(JobRecord)
                .where(
                    JobRecord.workspace_id == scope.workspace_id,
                    JobRecord.user_id == scope.user_id,
                )
                .order_by(col(JobRecord.created_at).desc(), col(JobRecord.id).desc())
                .limit(limit)
            )
            if status is not None:
                statement = statement.where(JobRecord.status == status.value)
            rows = session.exec(statement).all()
            return [_to_job_view(row) for row in rows]

    def get_job(self, job_id: int) -> JobView | None:
        with self._guard("get_job", write=False), Session(self.engine) as session:
            row = session.get(JobRecord, job_id)
            return _to_job_view(row) if row is not None else None

    def _db_datetime(self, value: datetime) -> datetime:
        return to_db_datetime(value, naive=self.naive_datetimes)

    def _transition(
        self,
        operation: str,
        *,
        job_id: int,
        expected: JobStatus,
        values: dict[str, Any],
    ) -> bool:
        with self._guard(operation, write=True), Session(self.engine) as session:
            result = session.exec(
                sa_update(JobRecord)
                .where(
                    col(JobRecord.id) == job_id,
                    col(JobRecord.status) == expected.value,
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    @contextmanager
    def _guard(self, operation: str, *, write: bool) -> Iterator[None]:
        error_cls = StoreWriteError if write else StoreError
        if not has_usable_credential(self.credentials):
            raise error_cls(operation, "no usable credential", kind=StoreErrorKind.AUTH_EXPIRED)
        try:
            yield
        except (SQLAlchemyError, OSError) as error:
            classification = classify_store_failure(error)
            logger.debug(
                "Store %s failed: kind=%s rule=%s pattern=%s",
                operation,
                classification.kind.value,
                classification.matched_rule,
                classification.matched_pattern,
            )
            message = str(error.orig) if isinstance(error, DBAPIError) else str(error)
            raise error_cls(operation, message, kind=classification.kind) from error


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _load_json(value: str | None) -> Any:
    if value is None:
        return None
    return json.loads(value)


def _to_job_view(row: JobRecord) -> JobView:
    if row.id is None:
        raise RuntimeError("Job row has no id; was it flushed?")
    return JobView(
        id=row.id,
        workspace_id=row.workspace_id,
        user_id=row.user_id,
        task_type=row.task_type,
        payload=_load_json(row.payload_json),
        status=JobStatus(row.status),
        priority=row.priority,
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=to_utc_aware_datetime(row.started_at) if row.started_at is not None else None,
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
        result=_load_json(row.result_json),
        error_message=row.error_message,
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
