"""CLI entrypoint for outreach-queue."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from outreach_queue import __version__
from outreach_queue.tasks.controllers import (
    TasksClearCommand,
    TasksCliController,
    TasksEnqueueBulkCommand,
    TasksEnqueueCommand,
    TasksJobCommand,
    TasksListCommand,
    TasksProcessCommand,
    TasksWorkerCommand,
)
from outreach_queue.tasks.errors import TaskQueueError

click.rich_click.USE_MARKDOWN = True
TASKS_CONTROLLER = TasksCliController()

_DB_PATH_HELP = "SQLite DB path."


@click.group()
@click.version_option(version=__version__, prog_name="outreach-queue")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (defaults to OUTREACH_QUEUE_LOG_LEVEL or INFO).",
)
def outreach_queue(log_level: str | None) -> None:
    """Background task queue CLI."""

    level = (log_level or os.getenv("OUTREACH_QUEUE_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@outreach_queue.group()
def tasks() -> None:
    """Task queue commands."""


@tasks.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.option("--type", "task_type", required=True, help="Job type, for example profile_analysis.")
@click.option("--payload", "payload_json", default="{}", show_default=True, help="JSON object.")
@click.option(
    "--priority",
    type=int,
    default=0,
    show_default=True,
    help="Higher number runs first.",
)
@click.option("--workspace-id", default=None, help="Owner workspace (defaults from env).")
@click.option("--user-id", default=None, help="Owner user (defaults from env).")
def tasks_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    task_type: str,
    payload_json: str,
    priority: int,
    workspace_id: str | None,
    user_id: str | None,
) -> None:
    """Enqueue one job; `tasks process` or `tasks worker` runs it."""

    _emit(
        lambda: TASKS_CONTROLLER.enqueue(
            TasksEnqueueCommand(
                db_path=db_path,
                task_type=task_type,
                payload_json=payload_json,
                priority=priority,
                workspace_id=workspace_id,
                user_id=user_id,
            ),
        ),
    )


@tasks.command("enqueue-bulk")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.option(
    "--file",
    "jobs_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help='JSON array of {"type", "payload", "priority"} objects.',
)
@click.option("--workspace-id", default=None, help="Owner workspace (defaults from env).")
@click.option("--user-id", default=None, help="Owner user (defaults from env).")
def tasks_enqueue_bulk(
    db_path: Path | None,
    jobs_path: Path,
    workspace_id: str | None,
    user_id: str | None,
) -> None:
    """Enqueue several jobs in one write."""

    _emit(
        lambda: TASKS_CONTROLLER.enqueue_bulk(
            TasksEnqueueBulkCommand(
                db_path=db_path,
                jobs_path=jobs_path,
                workspace_id=workspace_id,
                user_id=user_id,
            ),
        ),
    )


@tasks.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.option(
    "--status",
    type=click.Choice(["queued", "processing", "completed", "failed"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=200),
    default=50,
    show_default=True,
    help="Max jobs to show, newest first.",
)
@click.option("--workspace-id", default=None, help="Owner workspace (defaults from env).")
@click.option("--user-id", default=None, help="Owner user (defaults from env).")
def tasks_list(
    db_path: Path | None,
    status: str | None,
    limit: int,
    workspace_id: str | None,
    user_id: str | None,
) -> None:
    """List recent jobs of one owner scope."""

    _emit(
        lambda: TASKS_CONTROLLER.list_jobs(
            TasksListCommand(
                db_path=db_path,
                status=status.lower() if status is not None else None,
                limit=limit,
                workspace_id=workspace_id,
                user_id=user_id,
            ),
        ),
    )


@tasks.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.argument("job_id", type=int)
def tasks_inspect(db_path: Path | None, job_id: int) -> None:
    """Show one job with payload, result, and error."""

    _emit(lambda: TASKS_CONTROLLER.inspect(TasksJobCommand(db_path=db_path, job_id=job_id)))


@tasks.command("retry")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.argument("job_id", type=int)
def tasks_retry(db_path: Path | None, job_id: int) -> None:
    """Reset a failed/completed job to queued."""

    _emit(lambda: TASKS_CONTROLLER.retry(TasksJobCommand(db_path=db_path, job_id=job_id)))


@tasks.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.argument("job_id", type=int)
def tasks_delete(db_path: Path | None, job_id: int) -> None:
    """Delete one job regardless of status."""

    _emit(lambda: TASKS_CONTROLLER.delete(TasksJobCommand(db_path=db_path, job_id=job_id)))


@tasks.command("clear-completed")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.option("--workspace-id", default=None, help="Owner workspace (defaults from env).")
@click.option("--user-id", default=None, help="Owner user (defaults from env).")
def tasks_clear_completed(
    db_path: Path | None,
    workspace_id: str | None,
    user_id: str | None,
) -> None:
    """Delete completed jobs; queued, processing, and failed jobs are kept."""

    _emit(
        lambda: TASKS_CONTROLLER.clear_completed(
            TasksClearCommand(db_path=db_path, workspace_id=workspace_id, user_id=user_id),
        ),
    )


@tasks.command("process")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.option(
    "--max-cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap on cycles; by default runs until the queue is drained.",
)
def tasks_process(db_path: Path | None, max_cycles: int | None) -> None:
    """Run scheduling cycles in the foreground until no job is left."""

    _emit(
        lambda: TASKS_CONTROLLER.process(
            TasksProcessCommand(db_path=db_path, max_cycles=max_cycles),
        ),
    )


@tasks.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=_DB_PATH_HELP)
@click.option(
    "--run-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop after this many seconds; by default runs until SIGINT/SIGTERM.",
)
def tasks_worker(db_path: Path | None, run_seconds: float | None) -> None:
    """Start the polling scheduler."""

    _emit(
        lambda: TASKS_CONTROLLER.run_worker(
            TasksWorkerCommand(db_path=db_path, run_seconds=run_seconds),
        ),
    )


def _emit(produce: Callable[[], list[str]]) -> None:
    try:
        lines = produce()
    except (TaskQueueError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    outreach_queue()
