"""Milestone aggregator: derive a milestone's totals and status from its tasks.

A recompute never patches counters incrementally.  It re-reads the full task
set in a fresh session every time, so concurrent writes that raced each
other are corrected by whichever recompute runs last.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.milestones.helpers import commit_or_raise
from modules.milestones.rules import percent, resolve_status
from modules.milestones.sync import BookingProgressSync
from shared.errors import NotFoundError
from shared.models.milestone import Milestone
from shared.models.milestone_task import MilestoneTask

logger = structlog.get_logger()


@dataclass(frozen=True)
class TaskAggregates:
    total: int
    completed: int
    in_progress: int
    progress: int


def compute_aggregates(tasks: Iterable[MilestoneTask]) -> TaskAggregates:
    """Count tasks by status and derive the milestone completion percentage."""
    total = completed = in_progress = 0
    for t in tasks:
        total += 1
        if t.status == "completed":
            completed += 1
        elif t.status == "in_progress":
            in_progress += 1
    return TaskAggregates(
        total=total,
        completed=completed,
        in_progress=in_progress,
        progress=percent(completed, total),
    )


class MilestoneAggregator:
    """Recomputes milestone aggregates and fires the booking progress sync."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sync: BookingProgressSync | None = None,
    ):
        self.session_factory = session_factory
        self.sync = sync

    async def recompute(self, milestone_id: uuid.UUID) -> Milestone:
        """Recompute one milestone from a fresh read of all its tasks.

        Totals and progress are written unconditionally (0/0/0 for an empty
        milestone), then the status resolver runs.  Everything lands in one
        commit.

        Raises:
            NotFoundError: The milestone no longer exists.
            StoreError: The write failed; the stored aggregate is unchanged.
        """
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(
                select(Milestone).where(Milestone.id == milestone_id)
            )
            milestone = result.scalar_one_or_none()
            if not milestone:
                raise NotFoundError(f"Milestone not found: {milestone_id}")

            tasks_result = await session.execute(
                select(MilestoneTask).where(MilestoneTask.milestone_id == milestone_id)
            )
            agg = compute_aggregates(tasks_result.scalars().all())

            previous_status = milestone.status
            milestone.total_tasks = agg.total
            milestone.completed_tasks = agg.completed
            milestone.progress_percentage = agg.progress

            next_status = resolve_status(
                agg.progress, agg.in_progress, previous_status, total=agg.total
            )
            if next_status is not None:
                milestone.status = next_status
                milestone.completed_at = now if next_status == "completed" else None

            milestone.updated_at = now
            await commit_or_raise(
                session, "recompute milestone", milestone_id=str(milestone_id)
            )

        logger.info(
            "milestone_recomputed",
            milestone_id=str(milestone_id),
            total=agg.total,
            completed=agg.completed,
            progress=agg.progress,
            status=milestone.status,
            status_changed=next_status is not None,
        )

        if self.sync is not None:
            self.sync.notify(milestone.booking_id)
        return milestone

    async def recompute_booking(self, booking_id: uuid.UUID) -> list[Milestone]:
        """Recompute every milestone of a booking, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Milestone.id)
                .where(Milestone.booking_id == booking_id)
                .order_by(Milestone.created_at)
            )
            milestone_ids = list(result.scalars().all())

        return [await self.recompute(mid) for mid in milestone_ids]
