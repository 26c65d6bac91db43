"""Task store: CRUD for milestone tasks.

Status and progress are only ever changed through :meth:`TaskStore.apply_change`
semantics (``SetStatus`` / ``AdjustProgress``), which keeps the pair
consistent.  Any write that can move a task's status or progress triggers a
recompute of the owning milestone afterwards.

Time entries live here too: starting, stopping or logging time re-derives
the task's ``actual_hours`` from its finished entries in the same commit.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy import update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.milestones.aggregator import MilestoneAggregator
from modules.milestones.helpers import (
    check_hours,
    commit_or_raise,
    parse_date,
    require_title,
)
from modules.milestones.rules import (
    AdjustProgress,
    SetStatus,
    TaskChange,
    apply_task_change,
    entry_minutes,
    hours_from_minutes,
    round_half_up,
)
from shared.auth import Actor
from shared.errors import AuthError, NotFoundError, ValidationError
from shared.models.milestone import Milestone
from shared.models.milestone_task import MilestoneTask
from shared.models.time_entry import TimeEntry

logger = structlog.get_logger()

# Fields update() may touch directly; status goes through SetStatus.
_EDITABLE_FIELDS = {
    "title",
    "description",
    "status",
    "due_date",
    "estimated_hours",
    "actual_hours",
}


@dataclass
class TaskWrite:
    """A written task plus the milestone as left by the follow-up recompute.

    ``milestone`` is None when the write could not affect aggregates.
    """

    task: MilestoneTask | None
    milestone: Milestone | None


@dataclass
class TimeLog:
    """A time entry plus the re-derived ``actual_hours`` of its task."""

    entry: TimeEntry
    actual_hours: float


class TaskStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: MilestoneAggregator,
    ):
        self.session_factory = session_factory
        self.aggregator = aggregator

    async def _get_task(self, session: AsyncSession, task_id: uuid.UUID) -> MilestoneTask:
        result = await session.execute(
            select(MilestoneTask).where(MilestoneTask.id == task_id)
        )
        task = result.scalar_one_or_none()
        if not task:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    async def create(
        self,
        milestone_id: uuid.UUID,
        title: str,
        actor: Actor,
        description: str | None = None,
        status: str = "pending",
        due_date: str | date | None = None,
        estimated_hours: float | None = None,
        actual_hours: float | None = None,
    ) -> TaskWrite:
        title = require_title(title)
        status, progress = apply_task_change(status, 0, SetStatus(status))
        due = parse_date(due_date)
        estimated_hours = check_hours(estimated_hours, "estimated_hours")
        actual_hours = check_hours(actual_hours, "actual_hours")
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(
                select(Milestone.id).where(Milestone.id == milestone_id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"Milestone not found: {milestone_id}")

            task = MilestoneTask(
                id=uuid.uuid4(),
                milestone_id=milestone_id,
                title=title,
                description=description,
                status=status,
                progress_percentage=progress,
                due_date=due,
                estimated_hours=estimated_hours,
                actual_hours=actual_hours,
                created_by=actor.user_id,
                created_at=now,
                updated_at=now,
            )
            session.add(task)
            await commit_or_raise(session, "create task", milestone_id=str(milestone_id))

        logger.info(
            "task_created",
            task_id=str(task.id),
            milestone_id=str(milestone_id),
            status=status,
            actor=str(actor.user_id),
        )
        milestone = await self.aggregator.recompute(milestone_id)
        return TaskWrite(task=task, milestone=milestone)

    async def update(self, task_id: uuid.UUID, changes: dict, actor: Actor) -> TaskWrite:
        """Apply a partial update.  ``status`` is routed through SetStatus."""
        changes = dict(changes)
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update task fields: {', '.join(sorted(unknown))}")
        if "title" in changes:
            changes["title"] = require_title(changes["title"])
        if "due_date" in changes:
            changes["due_date"] = parse_date(changes["due_date"])
        for field in ("estimated_hours", "actual_hours"):
            if field in changes:
                changes[field] = check_hours(changes[field], field)

        status_change = SetStatus(changes.pop("status")) if "status" in changes else None
        task = await self._write(task_id, actor, status_change, changes)

        if status_change is None:
            return TaskWrite(task=task, milestone=None)
        milestone = await self.aggregator.recompute(task.milestone_id)
        return TaskWrite(task=task, milestone=milestone)

    async def apply_change(self, task_id: uuid.UUID, change: TaskChange, actor: Actor) -> TaskWrite:
        """Set a status or nudge progress, then recompute the milestone."""
        task = await self._write(task_id, actor, change, {})
        milestone = await self.aggregator.recompute(task.milestone_id)
        return TaskWrite(task=task, milestone=milestone)

    async def adjust_progress(self, task_id: uuid.UUID, delta: int, actor: Actor) -> TaskWrite:
        return await self.apply_change(task_id, AdjustProgress(delta), actor)

    async def _write(
        self,
        task_id: uuid.UUID,
        actor: Actor,
        change: TaskChange | None,
        fields: dict,
    ) -> MilestoneTask:
        async with self.session_factory() as session:
            task = await self._get_task(session, task_id)
            previous = (task.status, task.progress_percentage)

            for name, value in fields.items():
                setattr(task, name, value)
            if change is not None:
                task.status, task.progress_percentage = apply_task_change(
                    task.status, task.progress_percentage, change
                )

            task.updated_at = datetime.now(timezone.utc)
            await commit_or_raise(session, "update task", task_id=str(task_id))

        logger.info(
            "task_updated",
            task_id=str(task_id),
            milestone_id=str(task.milestone_id),
            status=task.status,
            progress=task.progress_percentage,
            previous_status=previous[0],
            previous_progress=previous[1],
            actor=str(actor.user_id),
        )
        return task

    async def delete(self, task_id: uuid.UUID, actor: Actor) -> TaskWrite:
        """Delete a task (its approvals cascade) and recompute the milestone."""
        async with self.session_factory() as session:
            task = await self._get_task(session, task_id)
            milestone_id = task.milestone_id
            await session.delete(task)
            await commit_or_raise(session, "delete task", task_id=str(task_id))

        logger.info(
            "task_deleted",
            task_id=str(task_id),
            milestone_id=str(milestone_id),
            actor=str(actor.user_id),
        )
        milestone = await self.aggregator.recompute(milestone_id)
        return TaskWrite(task=None, milestone=milestone)

    async def list(self, milestone_id: uuid.UUID) -> list[MilestoneTask]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MilestoneTask)
                .where(MilestoneTask.milestone_id == milestone_id)
                .order_by(MilestoneTask.created_at)
            )
            return list(result.scalars().all())

    # ── Time tracking ───────────────────────────────────────────────────

    async def _sync_actual_hours(
        self, session: AsyncSession, task_id: uuid.UUID, now: datetime
    ) -> float:
        """Re-derive ``actual_hours`` from the task's finished entries."""
        result = await session.execute(
            select(TimeEntry.duration_minutes).where(
                TimeEntry.task_id == task_id,
                TimeEntry.duration_minutes.is_not(None),
            )
        )
        hours = hours_from_minutes(result.scalars().all())
        await session.execute(
            sql_update(MilestoneTask)
            .where(MilestoneTask.id == task_id)
            .values(actual_hours=hours, updated_at=now)
        )
        return hours

    @staticmethod
    def _close(entry: TimeEntry, now: datetime) -> None:
        entry.ended_at = now
        entry.duration_minutes = entry_minutes(entry.started_at, now)
        entry.is_active = False

    async def start_timer(
        self, task_id: uuid.UUID, actor: Actor, description: str | None = None
    ) -> TimeEntry:
        """Start a timer on a task, stopping any timer the actor already has running."""
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            await self._get_task(session, task_id)

            result = await session.execute(
                select(TimeEntry).where(
                    TimeEntry.user_id == actor.user_id,
                    TimeEntry.is_active.is_(True),
                )
            )
            running = list(result.scalars().all())
            for entry in running:
                self._close(entry, now)
            for stopped_task_id in {e.task_id for e in running}:
                await self._sync_actual_hours(session, stopped_task_id, now)

            entry = TimeEntry(
                id=uuid.uuid4(),
                task_id=task_id,
                user_id=actor.user_id,
                description=description,
                started_at=now,
                is_active=True,
                created_at=now,
            )
            session.add(entry)
            await commit_or_raise(session, "start timer", task_id=str(task_id))

        logger.info(
            "time_tracking_started",
            entry_id=str(entry.id),
            task_id=str(task_id),
            stopped=len(running),
            actor=str(actor.user_id),
        )
        return entry

    async def stop_timer(self, entry_id: uuid.UUID, actor: Actor) -> TimeLog:
        """Stop a running timer and re-derive the task's actual hours.

        Raises:
            NotFoundError: No such entry.
            ValidationError: The entry is already stopped.
            AuthError: The entry belongs to another user and the actor is not an admin.
        """
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(select(TimeEntry).where(TimeEntry.id == entry_id))
            entry = result.scalar_one_or_none()
            if not entry:
                raise NotFoundError(f"Time entry not found: {entry_id}")
            if entry.user_id != actor.user_id and actor.role != "admin":
                raise AuthError("Only the user who started a timer (or an admin) can stop it")
            if not entry.is_active:
                raise ValidationError("Time entry is already stopped")

            self._close(entry, now)
            hours = await self._sync_actual_hours(session, entry.task_id, now)
            await commit_or_raise(session, "stop timer", entry_id=str(entry_id))

        logger.info(
            "time_tracking_stopped",
            entry_id=str(entry_id),
            task_id=str(entry.task_id),
            minutes=entry.duration_minutes,
            actual_hours=hours,
            actor=str(actor.user_id),
        )
        return TimeLog(entry=entry, actual_hours=hours)

    async def log_time(
        self,
        task_id: uuid.UUID,
        hours: float,
        actor: Actor,
        description: str | None = None,
    ) -> TimeLog:
        """Record a finished span of ``hours`` ending now."""
        try:
            minutes = round_half_up(float(hours) * 60)
        except (TypeError, ValueError, ArithmeticError):
            raise ValidationError(f"Invalid hours: {hours!r}") from None
        if minutes <= 0:
            raise ValidationError("Logged time must be at least one minute")
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            await self._get_task(session, task_id)

            entry = TimeEntry(
                id=uuid.uuid4(),
                task_id=task_id,
                user_id=actor.user_id,
                description=description,
                started_at=now - timedelta(minutes=minutes),
                ended_at=now,
                duration_minutes=minutes,
                is_active=False,
                created_at=now,
            )
            session.add(entry)
            total = await self._sync_actual_hours(session, task_id, now)
            await commit_or_raise(session, "log time", task_id=str(task_id))

        logger.info(
            "time_logged",
            entry_id=str(entry.id),
            task_id=str(task_id),
            minutes=minutes,
            actual_hours=total,
            actor=str(actor.user_id),
        )
        return TimeLog(entry=entry, actual_hours=total)

    async def active_entry(self, user_id: uuid.UUID) -> TimeEntry | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TimeEntry)
                .where(TimeEntry.user_id == user_id, TimeEntry.is_active.is_(True))
                .order_by(TimeEntry.started_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def time_entries(self, task_id: uuid.UUID) -> list[TimeEntry]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MilestoneTask.id).where(MilestoneTask.id == task_id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"Task not found: {task_id}")

            entries_result = await session.execute(
                select(TimeEntry)
                .where(TimeEntry.task_id == task_id)
                .order_by(TimeEntry.started_at)
            )
            return list(entries_result.scalars().all())
