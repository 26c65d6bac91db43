"""Milestone model: a weighted phase of a booking that aggregates tasks."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shared.models.base import Base

MILESTONE_STATUSES = ("pending", "in_progress", "completed", "on_hold", "cancelled")
MILESTONE_PRIORITIES = ("low", "normal", "high", "urgent")


class Milestone(Base):
    __tablename__ = "milestones"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    # Owning booking lives in the external booking service; no FK.
    booking_id: Mapped[uuid.UUID] = mapped_column(index=True)

    title: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    # Lifecycle: pending → in_progress → completed, plus on_hold / cancelled
    status: Mapped[str] = mapped_column(String, default="pending")
    priority: Mapped[str] = mapped_column(String, default="normal")

    # Relative contribution to the booking's overall progress
    weight: Mapped[float] = mapped_column(Float, default=1.0)

    # Aggregates, authoritative only right after a recompute
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)
    total_tasks: Mapped[int] = mapped_column(Integer, default=0)
    completed_tasks: Mapped[int] = mapped_column(Integer, default=0)

    due_date: Mapped[date | None] = mapped_column(Date, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    created_by: Mapped[uuid.UUID]
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
