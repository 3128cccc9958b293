"""Runtime configuration for the task queue."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from outreach_queue.storage.common import sqlite_url
from outreach_queue.storage.sqlmodel_models import DEFAULT_USER_ID, DEFAULT_WORKSPACE_ID
from outreach_queue.tasks.models import OwnerScope

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
DEFAULT_PROFILE_USER_AGENT = (
    "Mozilla/5.0 (compatible; OutreachQueueBot/0.1; profile analysis)"
)


@dataclass(slots=True)
class SchedulerSettings:
    """Scheduler timing policy."""

    poll_interval_seconds: float = 10.0
    stale_after_seconds: float = 300.0
    execution_timeout_seconds: float = 60.0
    transient_retry_seconds: float = 5.0
    drain_delay_seconds: float = 1.0
    stale_error_message: str = "Task timed out or app restarted during processing"


@dataclass(slots=True)
class ProfileAnalysisSettings:
    """Settings for the built-in profile analysis handler."""

    request_timeout_seconds: float = 30.0
    user_agent: str = DEFAULT_PROFILE_USER_AGENT
    excerpt_chars: int = 2_000


@dataclass(slots=True)
class OwnerSettings:
    """Default owner scope for CLI-driven enqueue/list."""

    workspace_id: str = DEFAULT_WORKSPACE_ID
    user_id: str = DEFAULT_USER_ID

    def scope(self) -> OwnerScope:
        return OwnerScope(workspace_id=self.workspace_id, user_id=self.user_id)


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".outreach_queue.db")
    db_url: str | None = None
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "INFO"
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    profile_analysis: ProfileAnalysisSettings = field(default_factory=ProfileAnalysisSettings)
    owner: OwnerSettings = field(default_factory=OwnerSettings)

    @property
    def database_url(self) -> str:
        return self.db_url or sqlite_url(self.db_path)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        db_url = os.getenv("OUTREACH_QUEUE_DB_URL", "").strip() or None
        return cls(
            db_path=db_path or Path(os.getenv("OUTREACH_QUEUE_DB_PATH", ".outreach_queue.db")),
            db_url=None if db_path is not None else db_url,
            sqlite_busy_timeout_ms=int(os.getenv("OUTREACH_QUEUE_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("OUTREACH_QUEUE_LOG_LEVEL", "INFO").strip().upper(),
            scheduler=SchedulerSettings(
                poll_interval_seconds=float(
                    os.getenv("OUTREACH_QUEUE_POLL_INTERVAL_SECONDS", "10"),
                ),
                stale_after_seconds=float(os.getenv("OUTREACH_QUEUE_STALE_AFTER_SECONDS", "300")),
                execution_timeout_seconds=float(
                    os.getenv("OUTREACH_QUEUE_EXECUTION_TIMEOUT_SECONDS", "60"),
                ),
                transient_retry_seconds=float(
                    os.getenv("OUTREACH_QUEUE_TRANSIENT_RETRY_SECONDS", "5"),
                ),
                drain_delay_seconds=float(os.getenv("OUTREACH_QUEUE_DRAIN_DELAY_SECONDS", "1")),
            ),
            profile_analysis=ProfileAnalysisSettings(
                request_timeout_seconds=float(
                    os.getenv("OUTREACH_QUEUE_PROFILE_REQUEST_TIMEOUT_SECONDS", "30"),
                ),
                user_agent=os.getenv(
                    "OUTREACH_QUEUE_PROFILE_USER_AGENT",
                    DEFAULT_PROFILE_USER_AGENT,
                ),
                excerpt_chars=int(os.getenv("OUTREACH_QUEUE_PROFILE_EXCERPT_CHARS", "2000")),
            ),
            owner=OwnerSettings(
                workspace_id=os.getenv("OUTREACH_QUEUE_WORKSPACE_ID", DEFAULT_WORKSPACE_ID),
                user_id=os.getenv("OUTREACH_QUEUE_USER_ID", DEFAULT_USER_ID),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        scheduler = self.scheduler
        if scheduler.poll_interval_seconds <= 0:
            raise ValueError("OUTREACH_QUEUE_POLL_INTERVAL_SECONDS must be > 0.")
        if scheduler.stale_after_seconds <= 0:
            raise ValueError("OUTREACH_QUEUE_STALE_AFTER_SECONDS must be > 0.")
        if scheduler.execution_timeout_seconds <= 0:
            raise ValueError("OUTREACH_QUEUE_EXECUTION_TIMEOUT_SECONDS must be > 0.")
        if scheduler.execution_timeout_seconds >= scheduler.stale_after_seconds:
            raise ValueError(
                "OUTREACH_QUEUE_EXECUTION_TIMEOUT_SECONDS must be lower than "
                "OUTREACH_QUEUE_STALE_AFTER_SECONDS, otherwise live jobs are swept as stale.",
            )
        if scheduler.transient_retry_seconds < 0:
            raise ValueError("OUTREACH_QUEUE_TRANSIENT_RETRY_SECONDS must be >= 0.")
        if scheduler.drain_delay_seconds < 0:
            raise ValueError("OUTREACH_QUEUE_DRAIN_DELAY_SECONDS must be >= 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("OUTREACH_QUEUE_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.profile_analysis.request_timeout_seconds <= 0:
            raise ValueError("OUTREACH_QUEUE_PROFILE_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.profile_analysis.excerpt_chars < 0:
            raise ValueError("OUTREACH_QUEUE_PROFILE_EXCERPT_CHARS must be >= 0.")
        if not self.owner.workspace_id.strip() or not self.owner.user_id.strip():
            raise ValueError("OUTREACH_QUEUE_WORKSPACE_ID and OUTREACH_QUEUE_USER_ID must be set.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Invalid OUTREACH_QUEUE_LOG_LEVEL: {self.log_level!r}")
