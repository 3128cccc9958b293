"""Polling scheduler that drains the job queue one job at a time."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from outreach_queue.config import SchedulerSettings
from outreach_queue.storage.common import utc_now
from outreach_queue.tasks.credentials import CredentialProvider, has_usable_credential
from outreach_queue.tasks.errors import (
    JobTimeoutError,
    StoreError,
    StoreErrorKind,
    UnknownJobTypeError,
)
from outreach_queue.tasks.models import CycleOutcome, CycleReport, JobView
from outreach_queue.tasks.registry import HandlerRegistry, JobContext, JobHandler
from outreach_queue.tasks.repository import JobStore

logger = logging.getLogger(__name__)

_SWEEP_ABORT_KINDS = frozenset({StoreErrorKind.AUTH_EXPIRED, StoreErrorKind.THROTTLED})
_DRAIN_OUTCOMES = frozenset({CycleOutcome.COMPLETED, CycleOutcome.FAILED, CycleOutcome.CLAIM_LOST})


@dataclass(slots=True)
class SchedulerStats:
    """Aggregate cycle counters for CLI reporting."""

    cycles: int = 0
    completed: int = 0
    failed: int = 0
    recovered: int = 0
    aborted: int = 0
    busy_skips: int = 0

    def record(self, report: CycleReport) -> None:
        if report.outcome == CycleOutcome.BUSY:
            self.busy_skips += 1
            return
        self.cycles += 1
        self.recovered += report.recovered
        if report.outcome == CycleOutcome.COMPLETED:
            self.completed += 1
        elif report.outcome == CycleOutcome.FAILED:
            self.failed += 1
        elif report.outcome not in {CycleOutcome.IDLE, CycleOutcome.CLAIM_LOST}:
            self.aborted += 1


class TaskScheduler:
    """Runs scheduling cycles from a repeating timer and on-demand triggers.

    At most one cycle runs at a time.  Each cycle sweeps stale ``processing``
    jobs, claims the next queued job, executes its handler under a timeout,
    and records the terminal state.  After a job reaches a terminal state the
    next cycle is scheduled after ``drain_delay_seconds`` instead of waiting
    for the poll timer; transient selection errors retry after
    ``transient_retry_seconds``; every other abort waits for the timer.

    A timed-out handler is not interrupted: its ``JobContext.cancel_requested``
    event is set and the task is left to finish on its own.  Its eventual
    outcome is logged and never written to the job.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        registry: HandlerRegistry,
        credentials: CredentialProvider,
        settings: SchedulerSettings | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.credentials = credentials
        self.settings = settings or SchedulerSettings()
        if self.settings.execution_timeout_seconds >= self.settings.stale_after_seconds:
            raise ValueError(
                f"Execution timeout ({self.settings.execution_timeout_seconds}s) must be lower "
                f"than the stale threshold ({self.settings.stale_after_seconds}s).",
            )
        self.stats = SchedulerStats()
        self._busy = False
        self._stopping = False
        self._poll_task: asyncio.Task[None] | None = None
        self._timers: set[asyncio.TimerHandle] = set()
        self._cycles: set[asyncio.Task[CycleReport]] = set()
        self._detached: set[asyncio.Future[Any]] = set()

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def detached_handlers(self) -> int:
        """Timed-out handler invocations that are still running."""

        return len(self._detached)

    async def start(self) -> None:
        """Start the poll timer and run one cycle right away."""

        if self.running:
            return
        self._stopping = False
        self._poll_task = asyncio.create_task(self._poll_loop(), name="task-queue-poll")
        logger.info(
            "Task queue polling started (interval=%ss)",
            self.settings.poll_interval_seconds,
        )
        self.trigger_now()

    async def stop(self) -> None:
        """Stop timers and wait for an in-flight cycle; handlers are not interrupted.

        Triggered cycles that have not started yet return ``STOPPED`` without
        touching the queue.
        """

        self._stopping = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
        logger.info("Task queue polling stopped")

    def trigger_now(self) -> asyncio.Task[CycleReport] | None:
        """Run one cycle asynchronously; a no-op cycle if one is already running."""

        if self._stopping:
            return None
        task = asyncio.get_running_loop().create_task(self.run_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return task

    async def drain(self, *, max_cycles: int | None = None) -> list[CycleReport]:
        """Run cycles back to back until one does not take a job to a terminal state."""

        reports: list[CycleReport] = []
        while max_cycles is None or len(reports) < max_cycles:
            report = await self._run_guarded()
            reports.append(report)
            if report.outcome not in _DRAIN_OUTCOMES:
                break
        return reports

    async def run_cycle(self) -> CycleReport:
        """Run one full cycle and apply the reschedule policy.

        A cycle that had not started when :meth:`stop` was called does nothing.
        """

        if self._stopping:
            return CycleReport(outcome=CycleOutcome.STOPPED)
        report = await self._run_guarded()
        self._reschedule(report)
        return report

    async def _run_guarded(self) -> CycleReport:
        if self._busy:
            report = CycleReport(outcome=CycleOutcome.BUSY)
            self.stats.record(report)
            return report
        self._busy = True
        try:
            report = await self._cycle()
        except Exception as error:
            logger.exception("Fatal error in task queue cycle")
            report = CycleReport(outcome=CycleOutcome.FATAL, error=str(error))
        finally:
            self._busy = False
        self.stats.record(report)
        return report

    async def _cycle(self) -> CycleReport:
        if not has_usable_credential(self.credentials):
            logger.warning("No usable credential available; skipping task queue cycle")
            return CycleReport(outcome=CycleOutcome.NO_CREDENTIALS)

        recovered = 0
        try:
            recovered = await self._recover_stale()
        except StoreError as error:
            if error.kind in _SWEEP_ABORT_KINDS:
                logger.warning("Stale job sweep failed, aborting cycle: %s", error)
                return CycleReport(outcome=CycleOutcome.SWEEP_ABORTED, error=str(error))
            logger.error("Stale job sweep failed: %s", error)

        try:
            job = await asyncio.to_thread(self.store.select_next_queued)
        except StoreError as error:
            if error.transient:
                logger.warning(
                    "Transient error fetching next job, retrying in %ss: %s",
                    self.settings.transient_retry_seconds,
                    error,
                )
                return CycleReport(
                    outcome=CycleOutcome.SELECTION_TRANSIENT,
                    recovered=recovered,
                    error=str(error),
                )
            logger.error("Failed to fetch next job: %s", error)
            return CycleReport(
                outcome=CycleOutcome.SELECTION_FAILED,
                recovered=recovered,
                error=str(error),
            )

        if job is None:
            return CycleReport(outcome=CycleOutcome.IDLE, recovered=recovered)

        if not await asyncio.to_thread(self.store.claim, job.id):
            logger.info("Job %s was claimed by another process; skipping", job.id)
            return CycleReport(outcome=CycleOutcome.CLAIM_LOST, job_id=job.id, recovered=recovered)

        logger.info("Processing job %s (%s)", job.id, job.task_type)
        outcome = await self._execute(job)
        return CycleReport(outcome=outcome, job_id=job.id, recovered=recovered)

    async def _recover_stale(self) -> int:
        stale_before = utc_now() - timedelta(seconds=self.settings.stale_after_seconds)
        recovered = await asyncio.to_thread(
            self.store.recover_stale,
            stale_before=stale_before,
            error_message=self.settings.stale_error_message,
        )
        if recovered:
            logger.warning("Marked %d stale processing job(s) as failed", recovered)
        return recovered

    async def _execute(self, job: JobView) -> CycleOutcome:
        handler = self.registry.resolve(job.task_type)
        if handler is None:
            return await self._record_failure(job, str(UnknownJobTypeError(job.task_type)))

        timeout = self.settings.execution_timeout_seconds
        context = JobContext(job_id=job.id, task_type=job.task_type, timeout_seconds=timeout)
        execution = asyncio.ensure_future(_invoke(handler, job.payload, context))
        done, _ = await asyncio.wait({execution}, timeout=timeout)
        if not done:
            context.cancel_requested.set()
            self._detach(job, execution)
            return await self._record_failure(job, str(JobTimeoutError(timeout)))

        if execution.cancelled():
            return await self._record_failure(job, "Task execution was cancelled")
        error = execution.exception()
        if error is not None:
            return await self._record_failure(job, _error_message(error))

        if await asyncio.to_thread(self.store.complete, job.id, execution.result()):
            logger.info("Job %s completed successfully", job.id)
        else:
            logger.warning("Job %s left processing before its result was recorded", job.id)
        return CycleOutcome.COMPLETED

    async def _record_failure(self, job: JobView, message: str) -> CycleOutcome:
        logger.warning("Job %s failed: %s", job.id, message)
        if not await asyncio.to_thread(self.store.fail, job.id, message):
            logger.warning("Job %s left processing before its failure was recorded", job.id)
        return CycleOutcome.FAILED

    def _detach(self, job: JobView, execution: asyncio.Future[Any]) -> None:
        self._detached.add(execution)

        def _finished(future: asyncio.Future[Any]) -> None:
            self._detached.discard(future)
            if future.cancelled():
                return
            error = future.exception()
            if error is not None:
                logger.info("Timed-out job %s handler later failed: %s", job.id, error)
            else:
                logger.info("Timed-out job %s handler later finished; result discarded", job.id)

        execution.add_done_callback(_finished)

    def _reschedule(self, report: CycleReport) -> None:
        if report.outcome == CycleOutcome.SELECTION_TRANSIENT:
            self._schedule_cycle(self.settings.transient_retry_seconds)
        elif report.outcome in _DRAIN_OUTCOMES:
            self._schedule_cycle(self.settings.drain_delay_seconds)

    def _schedule_cycle(self, delay: float) -> None:
        if self._stopping:
            return
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._timers.discard(handle)
            self.trigger_now()

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.poll_interval_seconds)
            self.trigger_now()


async def _invoke(handler: JobHandler, payload: Mapping[str, Any], context: JobContext) -> Any:
    return await handler(payload, context)


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__
