"""Milestone task model: the leaf unit of work carrying status and progress."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shared.models.base import Base

TASK_STATUSES = ("pending", "in_progress", "completed", "cancelled")


class MilestoneTask(Base):
    __tablename__ = "milestone_tasks"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    milestone_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("milestones.id", ondelete="CASCADE"), index=True
    )

    title: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    # Lifecycle: pending → in_progress → completed | cancelled
    status: Mapped[str] = mapped_column(String, default="pending")
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)

    due_date: Mapped[date | None] = mapped_column(Date, default=None)
    estimated_hours: Mapped[float | None] = mapped_column(Float, default=None)
    actual_hours: Mapped[float | None] = mapped_column(Float, default=None)

    created_by: Mapped[uuid.UUID]
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
