from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import allure
import pytest

from outreach_queue.config import SchedulerSettings, Settings

pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("Configuration"),
]


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "OUTREACH_QUEUE_DB_URL",
        "OUTREACH_QUEUE_DB_PATH",
        "OUTREACH_QUEUE_POLL_INTERVAL_SECONDS",
        "OUTREACH_QUEUE_STALE_AFTER_SECONDS",
        "OUTREACH_QUEUE_EXECUTION_TIMEOUT_SECONDS",
        "OUTREACH_QUEUE_WORKSPACE_ID",
        "OUTREACH_QUEUE_USER_ID",
        "OUTREACH_QUEUE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()
    settings.validate()

    assert settings.db_path == Path(".outreach_queue.db")
    assert settings.database_url == "sqlite:///.outreach_queue.db"
    assert settings.scheduler.poll_interval_seconds == 10.0
    assert settings.scheduler.stale_after_seconds == 300.0
    assert settings.scheduler.execution_timeout_seconds == 60.0
    assert settings.scheduler.transient_retry_seconds == 5.0
    assert settings.owner.scope().workspace_id == "default_workspace"
    assert settings.owner.scope().user_id == "default_user"
    assert settings.log_level == "INFO"


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OUTREACH_QUEUE_DB_URL", "postgresql+psycopg://queue@localhost/queue")
    monkeypatch.setenv("OUTREACH_QUEUE_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("OUTREACH_QUEUE_EXECUTION_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("OUTREACH_QUEUE_PROFILE_EXCERPT_CHARS", "500")
    monkeypatch.setenv("OUTREACH_QUEUE_WORKSPACE_ID", "ws-9")
    monkeypatch.setenv("OUTREACH_QUEUE_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.database_url == "postgresql+psycopg://queue@localhost/queue"
    assert settings.scheduler.poll_interval_seconds == 2.5
    assert settings.scheduler.execution_timeout_seconds == 30.0
    assert settings.profile_analysis.excerpt_chars == 500
    assert settings.owner.workspace_id == "ws-9"
    assert settings.log_level == "DEBUG"


def test_explicit_db_path_wins_over_db_url(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OUTREACH_QUEUE_DB_URL", "postgresql+psycopg://queue@localhost/queue")

    settings = Settings.from_env(db_path=tmp_path / "cli.db")

    assert settings.database_url == f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.mark.parametrize(
    ("scheduler", "message"),
    [
        (SchedulerSettings(poll_interval_seconds=0), "POLL_INTERVAL_SECONDS must be > 0"),
        (SchedulerSettings(stale_after_seconds=-1), "STALE_AFTER_SECONDS must be > 0"),
        (
            SchedulerSettings(execution_timeout_seconds=0),
            "EXECUTION_TIMEOUT_SECONDS must be > 0",
        ),
        (
            SchedulerSettings(execution_timeout_seconds=300, stale_after_seconds=300),
            "must be lower than",
        ),
        (SchedulerSettings(transient_retry_seconds=-1), "TRANSIENT_RETRY_SECONDS must be >= 0"),
    ],
)
def test_validate_rejects_bad_scheduler_timing(
    scheduler: SchedulerSettings,
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(scheduler=scheduler).validate()


def test_validate_rejects_unknown_log_level() -> None:
    with pytest.raises(ValueError, match="Invalid OUTREACH_QUEUE_LOG_LEVEL"):
        replace(Settings(), log_level="CHATTY").validate()
