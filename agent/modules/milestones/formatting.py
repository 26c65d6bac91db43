"""Serialise milestone tracker records into the read model returned by tools."""

from __future__ import annotations

import uuid
from datetime import datetime

from modules.milestones.approvals import NO_DECISION
from modules.milestones.progress import is_overdue
from shared.models.milestone import Milestone
from shared.models.milestone_task import MilestoneTask
from shared.models.task_approval import TaskApproval
from shared.models.time_entry import TimeEntry


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def task_to_dict(
    t: MilestoneTask,
    client_approval: str = NO_DECISION,
    now: datetime | None = None,
) -> dict:
    return {
        "task_id": str(t.id),
        "milestone_id": str(t.milestone_id),
        "title": t.title,
        "description": t.description,
        "status": t.status,
        "progress_percentage": t.progress_percentage,
        "due_date": _iso(t.due_date),
        "estimated_hours": t.estimated_hours,
        "actual_hours": t.actual_hours,
        "is_overdue": is_overdue(t, now),
        "client_approval": client_approval,
        "created_by": str(t.created_by) if t.created_by else None,
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


def milestone_to_dict(
    m: Milestone,
    tasks: list[MilestoneTask] | None = None,
    decisions: dict[uuid.UUID, str] | None = None,
    now: datetime | None = None,
) -> dict:
    d = {
        "milestone_id": str(m.id),
        "booking_id": str(m.booking_id),
        "title": m.title,
        "description": m.description,
        "status": m.status,
        "priority": m.priority,
        "weight": m.weight,
        "progress_percentage": m.progress_percentage,
        "total_tasks": m.total_tasks,
        "completed_tasks": m.completed_tasks,
        "due_date": _iso(m.due_date),
        "completed_at": _iso(m.completed_at),
        "created_at": _iso(m.created_at),
        "updated_at": _iso(m.updated_at),
    }
    if tasks is not None:
        decisions = decisions or {}
        d["tasks"] = [
            task_to_dict(t, decisions.get(t.id, NO_DECISION), now) for t in tasks
        ]
    return d


def approval_to_dict(a: TaskApproval) -> dict:
    return {
        "approval_id": str(a.id),
        "task_id": str(a.task_id),
        "action": a.action,
        "feedback": a.feedback,
        "approved_by": str(a.approved_by),
        "created_at": _iso(a.created_at),
    }


def time_entry_to_dict(e: TimeEntry) -> dict:
    return {
        "entry_id": str(e.id),
        "task_id": str(e.task_id),
        "user_id": str(e.user_id),
        "description": e.description,
        "started_at": _iso(e.started_at),
        "ended_at": _iso(e.ended_at),
        "duration_minutes": e.duration_minutes,
        "is_active": e.is_active,
    }
