"""Client approval workflow for completed tasks.

A client can record exactly one decision on a task that is completed and
has no decision yet:

    approve           -> task stays completed (100%)
    reject            -> task back to pending (0%)
    request_revision  -> task back to in_progress (50%)

The decision is stored as an append-only ``TaskApproval`` event; a task's
current decision is simply its latest event.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.milestones.aggregator import MilestoneAggregator
from modules.milestones.helpers import commit_or_raise
from modules.milestones.rules import SetStatus, apply_task_change
from modules.milestones.task_store import TaskWrite
from shared.auth import Actor
from shared.errors import NotFoundError, ValidationError
from shared.models.milestone_task import MilestoneTask
from shared.models.task_approval import APPROVAL_ACTIONS, TaskApproval

logger = structlog.get_logger()

NO_DECISION = "no_decision"

DECISIONS: dict[str, str] = {
    "approve": "approved",
    "reject": "rejected",
    "request_revision": "revision_requested",
}

_TASK_EFFECTS: dict[str, SetStatus] = {
    "approve": SetStatus("completed"),
    "reject": SetStatus("pending"),
    "request_revision": SetStatus("in_progress"),
}


def current_decision(events: Iterable[TaskApproval]) -> str:
    """Decision implied by the most recent event, or ``no_decision``."""
    latest = max(events, key=lambda e: e.created_at, default=None)
    if latest is None:
        return NO_DECISION
    return DECISIONS[latest.action]


def latest_decisions(events: Iterable[TaskApproval]) -> dict[uuid.UUID, str]:
    """Map task id -> current decision for every task that has events."""
    by_task: dict[uuid.UUID, list[TaskApproval]] = {}
    for e in events:
        by_task.setdefault(e.task_id, []).append(e)
    return {task_id: current_decision(evts) for task_id, evts in by_task.items()}


class ApprovalWorkflow:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: MilestoneAggregator,
    ):
        self.session_factory = session_factory
        self.aggregator = aggregator

    async def decide(
        self,
        task_id: uuid.UUID,
        action: str,
        actor: Actor,
        feedback: str | None = None,
    ) -> TaskWrite:
        """Record a client decision and apply its effect to the task.

        The event and the task change are committed together, then the
        owning milestone is recomputed once.

        Raises:
            ValidationError: Actor is not a client, unknown action, task not
                completed, or task already has a decision.  Nothing is written.
            NotFoundError: The task does not exist.
        """
        if not actor.is_client:
            raise ValidationError("Only the client can approve, reject or request revisions")
        if action not in APPROVAL_ACTIONS:
            raise ValidationError(
                f"Invalid approval action '{action}'. Expected one of: {', '.join(APPROVAL_ACTIONS)}"
            )
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(
                select(MilestoneTask).where(MilestoneTask.id == task_id)
            )
            task = result.scalar_one_or_none()
            if not task:
                raise NotFoundError(f"Task not found: {task_id}")

            events_result = await session.execute(
                select(TaskApproval).where(TaskApproval.task_id == task_id)
            )
            decision = current_decision(events_result.scalars().all())

            if task.status != "completed":
                raise ValidationError(
                    f"Task must be completed before a decision can be recorded (status: {task.status})"
                )
            if decision != NO_DECISION:
                raise ValidationError(f"Task already has a client decision: {decision}")

            session.add(
                TaskApproval(
                    id=uuid.uuid4(),
                    task_id=task_id,
                    action=action,
                    feedback=feedback,
                    approved_by=actor.user_id,
                    created_at=now,
                )
            )
            task.status, task.progress_percentage = apply_task_change(
                task.status, task.progress_percentage, _TASK_EFFECTS[action]
            )
            task.updated_at = now
            await commit_or_raise(session, "record approval", task_id=str(task_id))

        logger.info(
            "task_decision_recorded",
            task_id=str(task_id),
            action=action,
            task_status=task.status,
            actor=str(actor.user_id),
        )
        milestone = await self.aggregator.recompute(task.milestone_id)
        return TaskWrite(task=task, milestone=milestone)

    async def history(self, task_id: uuid.UUID) -> list[TaskApproval]:
        """All decision events for a task, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(MilestoneTask.id).where(MilestoneTask.id == task_id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"Task not found: {task_id}")

            events_result = await session.execute(
                select(TaskApproval)
                .where(TaskApproval.task_id == task_id)
                .order_by(TaskApproval.created_at)
            )
            return list(events_result.scalars().all())
