"""Task queue baseline schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "task_queue",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("result_json", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_queue_workspace_id", "task_queue", ["workspace_id"])
    op.create_index("ix_task_queue_user_id", "task_queue", ["user_id"])
    op.create_index("ix_task_queue_task_type", "task_queue", ["task_type"])
    op.create_index("ix_task_queue_status", "task_queue", ["status"])
    op.create_index(
        "idx_task_queue_selection",
        "task_queue",
        ["status", "priority", "created_at"],
    )
    op.create_index(
        "idx_task_queue_scope",
        "task_queue",
        ["workspace_id", "user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_task_queue_scope", table_name="task_queue")
    op.drop_index("idx_task_queue_selection", table_name="task_queue")
    op.drop_index("ix_task_queue_status", table_name="task_queue")
    op.drop_index("ix_task_queue_task_type", table_name="task_queue")
    op.drop_index("ix_task_queue_user_id", table_name="task_queue")
    op.drop_index("ix_task_queue_workspace_id", table_name="task_queue")
    op.drop_table("task_queue")
