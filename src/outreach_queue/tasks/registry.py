"""Job handler registry: the queue's only extensibility point."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(slots=True)
class JobContext:
    """Per-execution context handed to a handler.

    ``cancel_requested`` is set when the scheduler stops waiting for the
    handler.  The scheduler never interrupts a handler; long-running handlers
    may poll this event and return early.
    """

    job_id: int
    task_type: str
    timeout_seconds: float
    cancel_requested: asyncio.Event = field(default_factory=asyncio.Event)


class JobHandler(Protocol):
    """Executable unit of work for one job type."""

    async def __call__(self, payload: Mapping[str, Any], context: JobContext) -> Any:
        """Run the job and return a JSON-serializable result."""


class HandlerRegistry:
    """Maps job type tags to handlers registered at startup."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, task_type: str, handler: JobHandler, *, replace: bool = False) -> None:
        name = task_type.strip()
        if not name:
            raise ValueError("Job type must be a non-empty string.")
        if name in self._handlers and not replace:
            raise ValueError(f"Handler already registered for job type: {name}")
        self._handlers[name] = handler

    def resolve(self, task_type: str) -> JobHandler | None:
        return self._handlers.get(task_type)

    def task_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self.task_types())

    def __len__(self) -> int:
        return len(self._handlers)
