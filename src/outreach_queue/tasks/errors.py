"""Error taxonomy for the task queue."""

from __future__ import annotations

from enum import Enum


class StoreErrorKind(str, Enum):
    """Structured failure kinds reported by the queue store."""

    TRANSIENT = "transient"
    THROTTLED = "throttled"
    AUTH_EXPIRED = "auth_expired"
    PERMANENT = "permanent"


class TaskQueueError(RuntimeError):
    """Base class for task queue errors."""


class StoreError(TaskQueueError):
    """Queue store operation failed."""

    def __init__(self, operation: str, message: str, *, kind: StoreErrorKind) -> None:
        super().__init__(f"{operation} failed ({kind.value}): {message}")
        self.operation = operation
        self.kind = kind

    @property
    def transient(self) -> bool:
        return self.kind == StoreErrorKind.TRANSIENT


class StoreWriteError(StoreError):
    """Insert, update, or delete against the queue store failed."""


class JobNotFoundError(TaskQueueError):
    def __init__(self, job_id: int) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobStateError(TaskQueueError):
    """Requested transition is not allowed from the job's current status."""


class UnknownJobTypeError(TaskQueueError):
    def __init__(self, task_type: str) -> None:
        super().__init__(f"Unknown job type: {task_type}")
        self.task_type = task_type


class EnqueueValidationError(TaskQueueError, ValueError):
    """Job descriptor rejected before it reached the store."""


class JobTimeoutError(TaskQueueError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Task execution timed out ({_format_seconds(timeout_seconds)}s)")
        self.timeout_seconds = timeout_seconds


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
