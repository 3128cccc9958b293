"""Use-case services for the task queue: enqueue API and control operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from outreach_queue.tasks.errors import EnqueueValidationError
from outreach_queue.tasks.models import JobCreate, JobStatus, JobView, OwnerScope
from outreach_queue.tasks.repository import JobStore
from outreach_queue.tasks.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


@dataclass(slots=True)
class EnqueueJob:
    """High-level descriptor for one job in a bulk enqueue."""

    task_type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    priority: int | None = None


class TaskQueueService:
    """Validates and persists jobs, then nudges the scheduler."""

    def __init__(self, *, store: JobStore, scheduler: TaskScheduler) -> None:
        self.store = store
        self.scheduler = scheduler

    async def enqueue(
        self,
        scope: OwnerScope,
        task_type: str,
        payload: Mapping[str, Any] | None = None,
        priority: int | None = None,
    ) -> JobView:
        """Enqueue one job and trigger a cycle."""

        jobs = await self.enqueue_bulk(
            scope,
            [EnqueueJob(task_type=task_type, payload=payload or {}, priority=priority)],
        )
        return jobs[0]

    async def enqueue_bulk(self, scope: OwnerScope, jobs: Sequence[EnqueueJob]) -> list[JobView]:
        """Enqueue several jobs in one write and trigger a cycle."""

        creates = _validate_jobs(scope, jobs)
        created = await asyncio.to_thread(self.store.insert_jobs, scope, creates)
        logger.info(
            "%d task(s) added for workspace=%s user=%s",
            len(created),
            scope.workspace_id,
            scope.user_id,
        )
        self.scheduler.trigger_now()
        return created

    async def retry(self, job_id: int) -> JobView:
        """Reset a failed/completed job to queued and trigger a cycle."""

        job = await asyncio.to_thread(self.store.reset_for_retry, job_id)
        logger.info("Job %s reset to queued for retry", job_id)
        self.scheduler.trigger_now()
        return job

    def trigger_now(self) -> None:
        logger.info("Manually triggering queue processing")
        self.scheduler.trigger_now()

    async def clear_completed(self, scope: OwnerScope) -> int:
        deleted = await asyncio.to_thread(self.store.delete_completed, scope)
        logger.info(
            "Cleared %d completed job(s) for workspace=%s user=%s",
            deleted,
            scope.workspace_id,
            scope.user_id,
        )
        return deleted

    async def delete(self, job_id: int) -> None:
        await asyncio.to_thread(self.store.delete, job_id)
        logger.info("Job %s deleted", job_id)

    async def list(
        self,
        scope: OwnerScope,
        limit: int = 50,
        *,
        status: JobStatus | None = None,
    ) -> list[JobView]:
        bounded = max(1, min(int(limit or 50), MAX_LIST_LIMIT))
        return await asyncio.to_thread(self.store.list_jobs, scope, limit=bounded, status=status)

    async def get(self, job_id: int) -> JobView | None:
        return await asyncio.to_thread(self.store.get_job, job_id)


def _validate_jobs(scope: OwnerScope, jobs: Sequence[EnqueueJob]) -> list[JobCreate]:
    if not scope.workspace_id or not scope.workspace_id.strip():
        raise EnqueueValidationError("workspace_id is required to enqueue jobs.")
    if not scope.user_id or not scope.user_id.strip():
        raise EnqueueValidationError("user_id is required to enqueue jobs.")
    if not jobs:
        raise EnqueueValidationError("At least one job is required.")

    creates: list[JobCreate] = []
    for index, job in enumerate(jobs):
        task_type = (job.task_type or "").strip()
        if not task_type:
            raise EnqueueValidationError(f"Job #{index} is missing a task type.")
        if not isinstance(job.payload, Mapping):
            raise EnqueueValidationError(
                f"Job #{index} payload must be a mapping, got {type(job.payload).__name__}.",
            )
        priority = 0 if job.priority is None else job.priority
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise EnqueueValidationError(f"Job #{index} priority must be an integer.")
        creates.append(JobCreate(task_type=task_type, payload=dict(job.payload), priority=priority))
    return creates
