"""Echo handler for queue smoke runs."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from outreach_queue.tasks.registry import JobContext

ECHO_TASK_TYPE = "echo"


async def echo_handler(payload: Mapping[str, Any], context: JobContext) -> dict[str, Any]:
    """Return the payload; honour ``delay_seconds`` and ``fail`` for failure drills."""

    delay = float(payload.get("delay_seconds", 0) or 0)
    if delay > 0:
        try:
            await asyncio.wait_for(context.cancel_requested.wait(), timeout=delay)
        except TimeoutError:
            pass
        else:
            return {"echo": dict(payload), "interrupted": True}
    if payload.get("fail"):
        raise RuntimeError(str(payload.get("error") or "echo failure requested"))
    return {"echo": dict(payload)}
