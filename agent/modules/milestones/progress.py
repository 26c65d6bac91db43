"""Read-side progress rollups for a booking.

Nothing here is persisted; values are recomputed from the milestones and
tasks loaded for each read.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

import structlog

from modules.milestones.rules import round_half_up
from shared.models.milestone import Milestone
from shared.models.milestone_task import MilestoneTask

logger = structlog.get_logger()


def _weight(m: Milestone) -> Decimal:
    # Unset weight counts as the default of 1
    return Decimal(str(m.weight if m.weight is not None else 1))


def overall_progress(milestones: Iterable[Milestone]) -> int:
    """Weighted mean of milestone progress, rounded half-up.

    ``[(50%, w=1), (100%, w=3)]`` gives ``round(350 / 4) == 88``.
    A total weight of zero (or no milestones) yields 0.
    """
    milestones = list(milestones)
    total_weight = sum((_weight(m) for m in milestones), Decimal(0))
    if total_weight <= 0:
        if milestones:
            logger.debug("overall_progress_zero_weight", milestones=len(milestones))
        return 0
    weighted = sum(
        (Decimal(m.progress_percentage or 0) * _weight(m) for m in milestones),
        Decimal(0),
    )
    return round_half_up(weighted / total_weight)


def is_overdue(task: MilestoneTask, now: datetime | None = None) -> bool:
    """A task is overdue when its due date has passed and it is not completed."""
    if task.due_date is None or task.status == "completed":
        return False
    now = now or datetime.now(timezone.utc)
    return task.due_date < now.date()


def progress_summary(
    milestones: Iterable[Milestone],
    tasks: Iterable[MilestoneTask],
    now: datetime | None = None,
) -> dict:
    """Aggregate counters for a booking's progress dashboard."""
    milestones = list(milestones)
    tasks = list(tasks)

    milestone_counts = Counter(m.status for m in milestones)
    task_counts = Counter(t.status for t in tasks)
    avg_milestone = (
        round_half_up(Decimal(sum(m.progress_percentage or 0 for m in milestones)) / len(milestones))
        if milestones
        else 0
    )

    return {
        "overall_progress": overall_progress(milestones),
        "total_milestones": len(milestones),
        "milestones_by_status": dict(milestone_counts),
        "average_milestone_progress": avg_milestone,
        "total_tasks": len(tasks),
        "tasks_by_status": dict(task_counts),
        "overdue_tasks": sum(1 for t in tasks if is_overdue(t, now)),
        "total_estimated_hours": round(sum(t.estimated_hours or 0 for t in tasks), 2),
        "total_actual_hours": round(sum(t.actual_hours or 0 for t in tasks), 2),
    }
