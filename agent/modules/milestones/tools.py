"""Milestone tracker tool implementations — milestones, tasks, approvals, time, progress."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.milestones.aggregator import MilestoneAggregator
from modules.milestones.approvals import ApprovalWorkflow, current_decision, latest_decisions
from modules.milestones.formatting import (
    approval_to_dict,
    milestone_to_dict,
    task_to_dict,
    time_entry_to_dict,
)
from modules.milestones.helpers import (
    commit_or_raise,
    parse_date,
    parse_uuid,
    require_title,
)
from modules.milestones.progress import overall_progress, progress_summary
from modules.milestones.sync import BookingProgressSync
from modules.milestones.task_store import TaskStore, TaskWrite, TimeLog
from shared.auth import Actor, require_role
from shared.config import get_settings
from shared.errors import NotFoundError, ValidationError
from shared.models.milestone import MILESTONE_PRIORITIES, MILESTONE_STATUSES, Milestone
from shared.models.milestone_task import MilestoneTask
from shared.models.task_approval import TaskApproval

logger = structlog.get_logger()

# Roles that plan and edit milestones and tasks
EDITOR_ROLES = ("provider", "admin")


def _check_weight(weight) -> float:
    try:
        value = float(weight)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid weight: {weight!r}") from None
    if value <= 0:
        raise ValidationError("Weight must be a positive number")
    return value


def _check_choice(value: str, choices: tuple[str, ...], field: str) -> str:
    if value not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Expected one of: {', '.join(choices)}")
    return value


class MilestoneTrackerTools:
    """Tools for managing milestones, their tasks, and client approvals."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sync: BookingProgressSync | None = None,
    ):
        self.session_factory = session_factory
        self.aggregator = MilestoneAggregator(session_factory, sync)
        self.tasks = TaskStore(session_factory, self.aggregator)
        self.approvals = ApprovalWorkflow(session_factory, self.aggregator)

    # ── Read model ──────────────────────────────────────────────────────

    async def _load_trees(self, milestones: list[Milestone]) -> list[dict]:
        """Attach tasks and their current client decision to each milestone."""
        if not milestones:
            return []

        async with self.session_factory() as session:
            tasks_result = await session.execute(
                select(MilestoneTask)
                .where(MilestoneTask.milestone_id.in_([m.id for m in milestones]))
                .order_by(MilestoneTask.created_at)
            )
            tasks = list(tasks_result.scalars().all())

            events = []
            if tasks:
                events_result = await session.execute(
                    select(TaskApproval).where(TaskApproval.task_id.in_([t.id for t in tasks]))
                )
                events = list(events_result.scalars().all())

        decisions = latest_decisions(events)
        by_milestone: dict[uuid.UUID, list[MilestoneTask]] = {}
        for t in tasks:
            by_milestone.setdefault(t.milestone_id, []).append(t)

        now = datetime.now(timezone.utc)
        return [
            milestone_to_dict(m, by_milestone.get(m.id, []), decisions, now)
            for m in milestones
        ]

    async def _load_milestone(self, mid: uuid.UUID) -> Milestone:
        async with self.session_factory() as session:
            result = await session.execute(select(Milestone).where(Milestone.id == mid))
            milestone = result.scalar_one_or_none()
        if not milestone:
            raise NotFoundError(f"Milestone not found: {mid}")
        return milestone

    async def _task_response(self, write: TaskWrite, milestone_id: uuid.UUID) -> dict:
        """Return the refreshed milestone subtree, plus the written task if any."""
        milestone = write.milestone or await self._load_milestone(milestone_id)
        tree = (await self._load_trees([milestone]))[0]
        task = None
        if write.task is not None:
            task = next(
                (t for t in tree["tasks"] if t["task_id"] == str(write.task.id)),
                task_to_dict(write.task),
            )
        return {"task": task, "milestone": tree}

    # ── Milestone CRUD ──────────────────────────────────────────────────

    async def create_milestone(
        self,
        booking_id: str,
        title: str,
        actor: Actor,
        description: str | None = None,
        priority: str = "normal",
        weight: float = 1.0,
        due_date: str | None = None,
    ) -> dict:
        require_role(actor, *EDITOR_ROLES)
        bid = parse_uuid(booking_id, "booking_id")
        title = require_title(title)
        priority = _check_choice(priority, MILESTONE_PRIORITIES, "priority")
        weight = _check_weight(weight)
        due = parse_date(due_date)
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            milestone = Milestone(
                id=uuid.uuid4(),
                booking_id=bid,
                title=title,
                description=description,
                status="pending",
                priority=priority,
                weight=weight,
                progress_percentage=0,
                total_tasks=0,
                completed_tasks=0,
                due_date=due,
                created_by=actor.user_id,
                created_at=now,
                updated_at=now,
            )
            session.add(milestone)
            await commit_or_raise(session, "create milestone", booking_id=booking_id)

        logger.info(
            "milestone_created",
            milestone_id=str(milestone.id),
            booking_id=booking_id,
            actor=str(actor.user_id),
        )
        return milestone_to_dict(milestone, tasks=[])

    async def update_milestone(
        self,
        milestone_id: str,
        actor: Actor,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        weight: float | None = None,
        due_date: str | None = None,
    ) -> dict:
        """Direct edit.  An explicit status always wins; the resolver is not run."""
        require_role(actor, *EDITOR_ROLES)
        mid = parse_uuid(milestone_id, "milestone_id")
        if title is not None:
            title = require_title(title)
        if status is not None:
            _check_choice(status, MILESTONE_STATUSES, "status")
        if priority is not None:
            _check_choice(priority, MILESTONE_PRIORITIES, "priority")
        if weight is not None:
            weight = _check_weight(weight)
        due = parse_date(due_date)
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(select(Milestone).where(Milestone.id == mid))
            milestone = result.scalar_one_or_none()
            if not milestone:
                raise NotFoundError(f"Milestone not found: {milestone_id}")

            if title is not None:
                milestone.title = title
            if description is not None:
                milestone.description = description
            if status is not None:
                milestone.status = status
                if status == "completed":
                    milestone.completed_at = milestone.completed_at or now
                else:
                    milestone.completed_at = None
            if priority is not None:
                milestone.priority = priority
            if weight is not None:
                milestone.weight = weight
            if due_date is not None:
                milestone.due_date = due

            milestone.updated_at = now
            await commit_or_raise(session, "update milestone", milestone_id=milestone_id)

        logger.info(
            "milestone_updated",
            milestone_id=milestone_id,
            status=milestone.status,
            actor=str(actor.user_id),
        )
        return (await self._load_trees([milestone]))[0]

    async def delete_milestone(self, milestone_id: str, actor: Actor) -> dict:
        require_role(actor, *EDITOR_ROLES)
        mid = parse_uuid(milestone_id, "milestone_id")

        async with self.session_factory() as session:
            result = await session.execute(select(Milestone).where(Milestone.id == mid))
            milestone = result.scalar_one_or_none()
            if not milestone:
                raise NotFoundError(f"Milestone not found: {milestone_id}")

            # CASCADE removes its tasks and their approval history
            await session.delete(milestone)
            await commit_or_raise(session, "delete milestone", milestone_id=milestone_id)

        logger.info("milestone_deleted", milestone_id=milestone_id, actor=str(actor.user_id))
        return {"milestone_id": milestone_id, "message": "Milestone deleted."}

    async def get_milestone(self, milestone_id: str) -> dict:
        milestone = await self._load_milestone(parse_uuid(milestone_id, "milestone_id"))
        return (await self._load_trees([milestone]))[0]

    async def list_milestones(self, booking_id: str) -> dict:
        """Full read model for a booking, with the weighted overall progress."""
        bid = parse_uuid(booking_id, "booking_id")

        async with self.session_factory() as session:
            result = await session.execute(
                select(Milestone)
                .where(Milestone.booking_id == bid)
                .order_by(Milestone.created_at)
            )
            milestones = list(result.scalars().all())

        return {
            "booking_id": booking_id,
            "overall_progress": overall_progress(milestones),
            "milestones": await self._load_trees(milestones),
        }

    # ── Task management ─────────────────────────────────────────────────

    async def create_task(
        self,
        milestone_id: str,
        title: str,
        actor: Actor,
        description: str | None = None,
        status: str = "pending",
        due_date: str | None = None,
        estimated_hours: float | None = None,
        actual_hours: float | None = None,
    ) -> dict:
        require_role(actor, *EDITOR_ROLES)
        mid = parse_uuid(milestone_id, "milestone_id")
        write = await self.tasks.create(
            mid,
            title,
            actor,
            description=description,
            status=status,
            due_date=due_date,
            estimated_hours=estimated_hours,
            actual_hours=actual_hours,
        )
        return await self._task_response(write, mid)

    async def update_task(
        self,
        task_id: str,
        actor: Actor,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        due_date: str | None = None,
        estimated_hours: float | None = None,
        actual_hours: float | None = None,
    ) -> dict:
        require_role(actor, *EDITOR_ROLES)
        tid = parse_uuid(task_id, "task_id")
        changes = {
            name: value
            for name, value in (
                ("title", title),
                ("description", description),
                ("status", status),
                ("due_date", due_date),
                ("estimated_hours", estimated_hours),
                ("actual_hours", actual_hours),
            )
            if value is not None
        }
        if not changes:
            raise ValidationError("No task fields to update")

        write = await self.tasks.update(tid, changes, actor)
        return await self._task_response(write, write.task.milestone_id)

    async def adjust_task_progress(self, task_id: str, delta: int, actor: Actor) -> dict:
        """Nudge a task's progress (e.g. +25); its status follows the new value."""
        require_role(actor, *EDITOR_ROLES)
        tid = parse_uuid(task_id, "task_id")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError(f"Progress delta must be an integer, got {delta!r}")
        limit = get_settings().progress_adjust_max
        if delta == 0 or abs(delta) > limit:
            raise ValidationError(f"Progress delta must be non-zero and at most {limit} points")

        write = await self.tasks.adjust_progress(tid, delta, actor)
        return await self._task_response(write, write.task.milestone_id)

    async def delete_task(self, task_id: str, actor: Actor) -> dict:
        require_role(actor, *EDITOR_ROLES)
        tid = parse_uuid(task_id, "task_id")
        write = await self.tasks.delete(tid, actor)
        response = await self._task_response(write, write.milestone.id)
        response["deleted_task_id"] = task_id
        return response

    async def list_tasks(self, milestone_id: str) -> list[dict]:
        mid = parse_uuid(milestone_id, "milestone_id")
        tasks = await self.tasks.list(mid)
        if not tasks:
            return []

        async with self.session_factory() as session:
            result = await session.execute(
                select(TaskApproval).where(TaskApproval.task_id.in_([t.id for t in tasks]))
            )
            decisions = latest_decisions(result.scalars().all())

        now = datetime.now(timezone.utc)
        return [task_to_dict(t, decisions.get(t.id, "no_decision"), now) for t in tasks]

    # ── Client approvals ────────────────────────────────────────────────

    async def _decide(self, task_id: str, action: str, actor: Actor, feedback: str | None) -> dict:
        tid = parse_uuid(task_id, "task_id")
        write = await self.approvals.decide(tid, action, actor, feedback=feedback)
        return await self._task_response(write, write.task.milestone_id)

    async def approve_task(self, task_id: str, actor: Actor, feedback: str | None = None) -> dict:
        return await self._decide(task_id, "approve", actor, feedback)

    async def reject_task(self, task_id: str, actor: Actor, feedback: str | None = None) -> dict:
        return await self._decide(task_id, "reject", actor, feedback)

    async def request_revision(self, task_id: str, actor: Actor, feedback: str | None = None) -> dict:
        return await self._decide(task_id, "request_revision", actor, feedback)

    async def get_approval_history(self, task_id: str) -> dict:
        events = await self.approvals.history(parse_uuid(task_id, "task_id"))
        return {
            "task_id": task_id,
            "current_decision": current_decision(events),
            "events": [approval_to_dict(e) for e in events],
        }

    # ── Time tracking ───────────────────────────────────────────────────

    @staticmethod
    def _time_response(log: TimeLog) -> dict:
        return {
            "entry": time_entry_to_dict(log.entry),
            "task_id": str(log.entry.task_id),
            "actual_hours": log.actual_hours,
        }

    async def start_time_tracking(
        self, task_id: str, actor: Actor, description: str | None = None
    ) -> dict:
        """Start a timer on a task.  Any timer the actor has running is stopped first."""
        require_role(actor, *EDITOR_ROLES)
        entry = await self.tasks.start_timer(
            parse_uuid(task_id, "task_id"), actor, description=description
        )
        return time_entry_to_dict(entry)

    async def stop_time_tracking(self, entry_id: str, actor: Actor) -> dict:
        require_role(actor, *EDITOR_ROLES)
        log = await self.tasks.stop_timer(parse_uuid(entry_id, "entry_id"), actor)
        return self._time_response(log)

    async def log_time(
        self, task_id: str, hours: float, actor: Actor, description: str | None = None
    ) -> dict:
        require_role(actor, *EDITOR_ROLES)
        tid = parse_uuid(task_id, "task_id")
        if isinstance(hours, bool):
            raise ValidationError(f"Invalid hours: {hours!r}")
        log = await self.tasks.log_time(tid, hours, actor, description=description)
        return self._time_response(log)

    async def get_active_time_entry(self, actor: Actor) -> dict:
        entry = await self.tasks.active_entry(actor.user_id)
        return {"entry": time_entry_to_dict(entry) if entry else None}

    async def list_time_entries(self, task_id: str) -> dict:
        entries = await self.tasks.time_entries(parse_uuid(task_id, "task_id"))
        return {
            "task_id": task_id,
            "total_minutes": sum(e.duration_minutes or 0 for e in entries),
            "entries": [time_entry_to_dict(e) for e in entries],
        }

    # ── Progress ────────────────────────────────────────────────────────

    async def refresh_progress(self, milestone_id: str, actor: Actor) -> dict:
        """Operator-triggered recompute, for recovering from a dropped trigger."""
        milestone = await self.aggregator.recompute(parse_uuid(milestone_id, "milestone_id"))
        logger.info("milestone_progress_refreshed", milestone_id=milestone_id, actor=str(actor.user_id))
        return (await self._load_trees([milestone]))[0]

    async def refresh_booking(self, booking_id: str, actor: Actor) -> dict:
        bid = parse_uuid(booking_id, "booking_id")
        refreshed = await self.aggregator.recompute_booking(bid)
        logger.info(
            "booking_progress_refreshed",
            booking_id=booking_id,
            milestones=len(refreshed),
            actor=str(actor.user_id),
        )
        return await self.list_milestones(booking_id)

    async def get_progress_summary(self, booking_id: str) -> dict:
        bid = parse_uuid(booking_id, "booking_id")

        async with self.session_factory() as session:
            result = await session.execute(
                select(Milestone).where(Milestone.booking_id == bid)
            )
            milestones = list(result.scalars().all())

            tasks = []
            if milestones:
                tasks_result = await session.execute(
                    select(MilestoneTask).where(
                        MilestoneTask.milestone_id.in_([m.id for m in milestones])
                    )
                )
                tasks = list(tasks_result.scalars().all())

        return {"booking_id": booking_id, **progress_summary(milestones, tasks)}
