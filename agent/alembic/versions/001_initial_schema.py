"""Initial schema: milestones, milestone_tasks, task_approvals.

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Milestones
    op.create_table(
        "milestones",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("booking_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(), nullable=False, server_default="normal"),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "progress_percentage BETWEEN 0 AND 100", name="ck_milestones_progress_range"
        ),
        sa.CheckConstraint("weight > 0", name="ck_milestones_weight_positive"),
    )
    op.create_index("ix_milestones_booking_id", "milestones", ["booking_id"])

    # Tasks
    op.create_table(
        "milestone_tasks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "milestone_id", sa.Uuid(),
            sa.ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "progress_percentage BETWEEN 0 AND 100", name="ck_milestone_tasks_progress_range"
        ),
    )
    op.create_index("ix_milestone_tasks_milestone_id", "milestone_tasks", ["milestone_id"])

    # Client approval events (append-only)
    op.create_table(
        "task_approvals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "task_id", sa.Uuid(),
            sa.ForeignKey("milestone_tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.Uuid(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_task_approvals_task_created", "task_approvals", ["task_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_task_approvals_task_created")
    op.drop_table("task_approvals")

    op.drop_index("ix_milestone_tasks_milestone_id")
    op.drop_table("milestone_tasks")

    op.drop_index("ix_milestones_booking_id")
    op.drop_table("milestones")
