"""Built-in job handlers."""

from __future__ import annotations

from outreach_queue.config import Settings
from outreach_queue.tasks.handlers.echo import ECHO_TASK_TYPE, echo_handler
from outreach_queue.tasks.handlers.profile_analysis import (
    PROFILE_ANALYSIS_TASK_TYPE,
    ProfileAnalysisHandler,
)
from outreach_queue.tasks.registry import HandlerRegistry

__all__ = [
    "ECHO_TASK_TYPE",
    "PROFILE_ANALYSIS_TASK_TYPE",
    "ProfileAnalysisHandler",
    "build_default_registry",
    "echo_handler",
]


def build_default_registry(settings: Settings) -> HandlerRegistry:
    """Registry with every built-in handler."""

    registry = HandlerRegistry()
    registry.register(
        PROFILE_ANALYSIS_TASK_TYPE,
        ProfileAnalysisHandler(settings=settings.profile_analysis),
    )
    registry.register(ECHO_TASK_TYPE, echo_handler)
    return registry
