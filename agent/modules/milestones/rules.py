"""Status and progress rules for tasks and milestones.

Everything here is pure: no sessions, no clocks.  The task store and the
milestone aggregator call into these functions so that the same rules apply
on every write path.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from shared.errors import ValidationError
from shared.models.milestone_task import TASK_STATUSES

# Progress implied by an explicit task status change.  "cancelled" has no
# entry and keeps whatever progress the task already had.
STATUS_PROGRESS: dict[str, int] = {
    "pending": 0,
    "in_progress": 50,
    "completed": 100,
}

# Milestone statuses the resolver must never auto-complete out of.
_NO_AUTO_COMPLETE = {"completed", "on_hold", "cancelled"}


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest integer, .5 away from zero (87.5 -> 88, 12.5 -> 13)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent(part: int, whole: int) -> int:
    """Integer percentage of ``part / whole`` rounded half-up, 0 when whole is 0."""
    if whole <= 0:
        return 0
    # Exact integer form of round_half_up(100 * part / whole)
    return (200 * part + whole) // (2 * whole)


def clamp_progress(value: int) -> int:
    return max(0, min(100, value))


# ── Task changes ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SetStatus:
    """Explicitly move a task to ``status``; progress follows STATUS_PROGRESS."""

    status: str


@dataclass(frozen=True)
class AdjustProgress:
    """Nudge a task's progress by ``delta`` points; status follows progress."""

    delta: int


TaskChange = SetStatus | AdjustProgress


def status_for_progress(progress: int) -> str:
    if progress >= 100:
        return "completed"
    if progress <= 0:
        return "pending"
    return "in_progress"


def apply_task_change(status: str, progress: int, change: TaskChange) -> tuple[str, int]:
    """Return the normalised ``(status, progress)`` pair after ``change``.

    Both fields are always derived together so a task can never end up as
    e.g. ``pending`` at 75%.

    Raises:
        ValidationError: Unknown status, or a progress nudge on a cancelled task.
    """
    if isinstance(change, SetStatus):
        if change.status not in TASK_STATUSES:
            raise ValidationError(
                f"Invalid task status '{change.status}'. Expected one of: {', '.join(TASK_STATUSES)}"
            )
        return change.status, STATUS_PROGRESS.get(change.status, progress)

    if isinstance(change, AdjustProgress):
        if status == "cancelled":
            raise ValidationError("Cannot adjust progress of a cancelled task")
        new_progress = clamp_progress(progress + change.delta)
        return status_for_progress(new_progress), new_progress

    raise ValidationError(f"Unsupported task change: {change!r}")


# ── Milestone status resolver ───────────────────────────────────────────


def resolve_status(
    progress: int,
    in_progress_count: int,
    current_status: str,
    total: int | None = None,
) -> str | None:
    """Infer the next milestone status from freshly aggregated task state.

    A milestone with no tasks (``total == 0``) keeps its status.  Otherwise
    the rules apply, first match wins:

    1. 100% and not completed/on_hold/cancelled -> ``completed``
    2. strictly between 0 and 100 while ``pending`` -> ``in_progress``
    3. 0% while ``in_progress`` with no task in progress -> ``pending``

    Returns None when the status should stay as it is.  Only the aggregator
    calls this; direct milestone edits are never overridden by it.
    """
    if total == 0:
        return None
    if progress == 100 and current_status not in _NO_AUTO_COMPLETE:
        return "completed"
    if 0 < progress < 100 and current_status == "pending":
        return "in_progress"
    if progress == 0 and current_status == "in_progress" and in_progress_count == 0:
        return "pending"
    return None


# ── Time tracking ───────────────────────────────────────────────────────


def entry_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between two timestamps, rounded half-up, never negative."""
    seconds = Decimal(str((ended_at - started_at).total_seconds()))
    return max(0, round_half_up(seconds / 60))


def hours_from_minutes(minutes: Iterable[int | None]) -> float:
    """Total logged hours for a task, to two decimals (90 + 45 min -> 2.25)."""
    return round(sum(m or 0 for m in minutes) / 60, 2)
