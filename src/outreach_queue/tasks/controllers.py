"""Controllers for task queue CLI commands."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from outreach_queue.config import Settings
from outreach_queue.tasks.credentials import EnvCredentialProvider
from outreach_queue.tasks.handlers import build_default_registry
from outreach_queue.tasks.models import CycleReport, JobStatus, JobView, OwnerScope
from outreach_queue.tasks.repository import JobStore
from outreach_queue.tasks.scheduler import SchedulerStats, TaskScheduler
from outreach_queue.tasks.services import EnqueueJob, TaskQueueService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TasksEnqueueCommand:
    """CLI input for single job enqueue."""

    db_path: Path | None
    task_type: str
    payload_json: str
    priority: int
    workspace_id: str | None
    user_id: str | None


@dataclass(slots=True)
class TasksEnqueueBulkCommand:
    """CLI input for bulk enqueue from a JSON file."""

    db_path: Path | None
    jobs_path: Path
    workspace_id: str | None
    user_id: str | None


@dataclass(slots=True)
class TasksListCommand:
    db_path: Path | None
    status: str | None
    limit: int
    workspace_id: str | None
    user_id: str | None


@dataclass(slots=True)
class TasksJobCommand:
    """CLI input for inspect/retry/delete."""

    db_path: Path | None
    job_id: int


@dataclass(slots=True)
class TasksClearCommand:
    db_path: Path | None
    workspace_id: str | None
    user_id: str | None


@dataclass(slots=True)
class TasksProcessCommand:
    """CLI input for draining the queue in the foreground."""

    db_path: Path | None
    max_cycles: int | None


@dataclass(slots=True)
class TasksWorkerCommand:
    """CLI input for the long-running scheduler."""

    db_path: Path | None
    run_seconds: float | None


@dataclass(slots=True)
class _Runtime:
    settings: Settings
    store: JobStore
    scheduler: TaskScheduler
    service: TaskQueueService


class TasksCliController:
    """Coordinates enqueue, scheduling, and inspection CLI operations."""

    def enqueue(self, command: TasksEnqueueCommand) -> list[str]:
        payload = _parse_payload(command.payload_json)

        async def _run(runtime: _Runtime) -> JobView:
            return await runtime.service.enqueue(
                _scope(runtime.settings, command.workspace_id, command.user_id),
                command.task_type,
                payload,
                command.priority,
            )

        job = _run_with_runtime(command.db_path, _run)
        return [
            f"Task enqueued: job_id={job.id} type={job.task_type} "
            f"priority={job.priority} status={job.status.value}",
        ]

    def enqueue_bulk(self, command: TasksEnqueueBulkCommand) -> list[str]:
        jobs = _read_bulk_jobs(command.jobs_path)

        async def _run(runtime: _Runtime) -> list[JobView]:
            return await runtime.service.enqueue_bulk(
                _scope(runtime.settings, command.workspace_id, command.user_id),
                jobs,
            )

        created = _run_with_runtime(command.db_path, _run)
        lines = [f"Tasks enqueued: {len(created)}"]
        lines.extend(f"  {_job_line(job)}" for job in created)
        return lines

    def list_jobs(self, command: TasksListCommand) -> list[str]:
        status = JobStatus(command.status) if command.status else None

        async def _run(runtime: _Runtime) -> list[JobView]:
            return await runtime.service.list(
                _scope(runtime.settings, command.workspace_id, command.user_id),
                command.limit,
                status=status,
            )

        jobs = _run_with_runtime(command.db_path, _run)
        lines = [f"Tasks: {len(jobs)}"]
        lines.extend(f"  {_job_line(job)}" for job in jobs)
        return lines

    def inspect(self, command: TasksJobCommand) -> list[str]:
        async def _run(runtime: _Runtime) -> JobView | None:
            return await runtime.service.get(command.job_id)

        job = _run_with_runtime(command.db_path, _run)
        if job is None:
            return [f"Job not found: {command.job_id}"]
        return [
            f"Job: {job.id}",
            f"Type: {job.task_type}",
            f"Status: {job.status.value}",
            f"Priority: {job.priority}",
            f"Workspace: {job.workspace_id}",
            f"User: {job.user_id}",
            f"Created: {job.created_at.isoformat()}",
            f"Started: {_iso(job.started_at)}",
            f"Completed: {_iso(job.completed_at)}",
            f"Error: {job.error_message or '-'}",
            f"Payload: {json.dumps(job.payload, ensure_ascii=False, sort_keys=True)}",
            "Result: "
            + (
                json.dumps(job.result, ensure_ascii=False, sort_keys=True)
                if job.result is not None
                else "-"
            ),
        ]

    def retry(self, command: TasksJobCommand) -> list[str]:
        async def _run(runtime: _Runtime) -> JobView:
            return await runtime.service.retry(command.job_id)

        job = _run_with_runtime(command.db_path, _run)
        return [f"Task retried: job_id={job.id} status={job.status.value}"]

    def delete(self, command: TasksJobCommand) -> list[str]:
        async def _run(runtime: _Runtime) -> None:
            await runtime.service.delete(command.job_id)

        _run_with_runtime(command.db_path, _run)
        return [f"Task deleted: job_id={command.job_id}"]

    def clear_completed(self, command: TasksClearCommand) -> list[str]:
        async def _run(runtime: _Runtime) -> int:
            return await runtime.service.clear_completed(
                _scope(runtime.settings, command.workspace_id, command.user_id),
            )

        deleted = _run_with_runtime(command.db_path, _run)
        return [f"Completed tasks cleared: {deleted}"]

    def process(self, command: TasksProcessCommand) -> list[str]:
        async def _run(runtime: _Runtime) -> list[CycleReport]:
            return await runtime.scheduler.drain(max_cycles=command.max_cycles)

        reports = _run_with_runtime(command.db_path, _run)
        lines = [f"Cycles: {len(reports)}"]
        for report in reports:
            job = f" job_id={report.job_id}" if report.job_id is not None else ""
            error = f" error={report.error}" if report.error else ""
            lines.append(
                f"  outcome={report.outcome.value}{job} recovered={report.recovered}{error}",
            )
        return lines

    def run_worker(self, command: TasksWorkerCommand) -> list[str]:
        async def _run(runtime: _Runtime) -> SchedulerStats:
            stop_requested = asyncio.Event()
            loop = asyncio.get_running_loop()
            for signum in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.add_signal_handler(signum, stop_requested.set)
            await runtime.scheduler.start()
            try:
                await asyncio.wait_for(stop_requested.wait(), timeout=command.run_seconds)
            except TimeoutError:
                pass
            finally:
                for signum in (signal.SIGINT, signal.SIGTERM):
                    with contextlib.suppress(NotImplementedError, RuntimeError):
                        loop.remove_signal_handler(signum)
            return runtime.scheduler.stats

        scheduler_stats = _run_with_runtime(command.db_path, _run)
        return [
            "Worker summary: "
            f"cycles={scheduler_stats.cycles} completed={scheduler_stats.completed} "
            f"failed={scheduler_stats.failed} recovered={scheduler_stats.recovered} "
            f"aborted={scheduler_stats.aborted}",
        ]


def _run_with_runtime(db_path: Path | None, operation: Any) -> Any:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()

    async def _main() -> Any:
        async with _runtime(settings) as runtime:
            return await operation(runtime)

    return asyncio.run(_main())


@asynccontextmanager
async def _runtime(settings: Settings) -> AsyncIterator[_Runtime]:
    credentials = EnvCredentialProvider()
    store = JobStore(
        settings.database_url,
        credentials=credentials,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    store.init_schema()
    scheduler = TaskScheduler(
        store=store,
        registry=build_default_registry(settings),
        credentials=credentials,
        settings=settings.scheduler,
    )
    try:
        yield _Runtime(
            settings=settings,
            store=store,
            scheduler=scheduler,
            service=TaskQueueService(store=store, scheduler=scheduler),
        )
    finally:
        await scheduler.stop()
        if scheduler.detached_handlers:
            logger.warning(
                "%d timed-out handler(s) still running at exit",
                scheduler.detached_handlers,
            )
        store.close()


def _scope(settings: Settings, workspace_id: str | None, user_id: str | None) -> OwnerScope:
    return OwnerScope(
        workspace_id=workspace_id or settings.owner.workspace_id,
        user_id=user_id or settings.owner.user_id,
    )


def _parse_payload(raw: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw or "{}")
    except json.JSONDecodeError as error:
        raise ValueError(f"Invalid --payload JSON: {error}") from error
    if not isinstance(payload, dict):
        raise ValueError("--payload must be a JSON object.")
    return payload


def _read_bulk_jobs(path: Path) -> list[EnqueueJob]:
    try:
        raw = json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Invalid jobs file {path}: {error}") from error
    if not isinstance(raw, list):
        raise ValueError(f"Jobs file {path} must contain a JSON array.")

    jobs: list[EnqueueJob] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Jobs file entry #{index} must be an object.")
        jobs.append(
            EnqueueJob(
                task_type=str(item.get("type") or item.get("task_type") or ""),
                payload=item.get("payload") or {},
                priority=item.get("priority"),
            ),
        )
    return jobs


def _job_line(job: JobView) -> str:
    line = (
        f"{job.id} type={job.task_type} status={job.status.value} "
        f"priority={job.priority} created_at={job.created_at.isoformat()}"
    )
    if job.error_message:
        line += f" error={job.error_message}"
    return line


def _iso(value: Any) -> str:
    return value.isoformat() if value is not None else "-"
