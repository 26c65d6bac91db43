"""Client approval events recorded against completed tasks.

Rows are append-only.  A task's current decision is its most recent row.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shared.models.base import Base

APPROVAL_ACTIONS = ("approve", "reject", "request_revision")


class TaskApproval(Base):
    __tablename__ = "task_approvals"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("milestone_tasks.id", ondelete="CASCADE")
    )

    action: Mapped[str] = mapped_column(String)  # approve | reject | request_revision
    feedback: Mapped[str | None] = mapped_column(Text, default=None)
    approved_by: Mapped[uuid.UUID]

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_task_approvals_task_created", "task_id", "created_at"),
    )
