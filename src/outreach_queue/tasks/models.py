"""Domain models for the task queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class CycleOutcome(str, Enum):
    """What one scheduling cycle did; drives the reschedule policy."""

    BUSY = "busy"
    NO_CREDENTIALS = "no_credentials"
    SWEEP_ABORTED = "sweep_aborted"
    IDLE = "idle"
    SELECTION_TRANSIENT = "selection_transient"
    SELECTION_FAILED = "selection_failed"
    CLAIM_LOST = "claim_lost"
    COMPLETED = "completed"
    FAILED = "failed"
    FATAL = "fatal"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class OwnerScope:
    """Workspace/user pair used for listing and bulk clear."""

    workspace_id: str
    user_id: str


@dataclass(slots=True)
class JobCreate:
    """Input payload for enqueuing one job."""

    task_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    priority: int = 0


@dataclass(slots=True)
class JobView:
    """Readable job view for services, CLI, and scheduler logic."""

    id: int
    workspace_id: str
    user_id: str
    task_type: str
    payload: Any
    status: JobStatus
    priority: int
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    result: Any
    error_message: str | None
    updated_at: datetime

    @property
    def scope(self) -> OwnerScope:
        return OwnerScope(workspace_id=self.workspace_id, user_id=self.user_id)


@dataclass(slots=True)
class CycleReport:
    """Result of one scheduling cycle."""

    outcome: CycleOutcome
    job_id: int | None = None
    recovered: int = 0
    error: str | None = None

    @property
    def processed(self) -> bool:
        return self.outcome in {CycleOutcome.COMPLETED, CycleOutcome.FAILED}
