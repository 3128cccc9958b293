"""SQLModel ORM tables for the task queue."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel

DEFAULT_WORKSPACE_ID = "default_workspace"
DEFAULT_USER_ID = "default_user"


class JobRecord(SQLModel, table=True):
    __tablename__ = "task_queue"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_task_queue_selection", "status", "priority", "created_at"),
        Index("idx_task_queue_scope", "workspace_id", "user_id", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    workspace_id: str = Field(index=True)
    user_id: str = Field(index=True)
    task_type: str = Field(index=True)
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    priority: int = Field(default=0)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    result_json: str | None = Field(default=None, sa_column=Column(Text))
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
