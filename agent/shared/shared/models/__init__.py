"""SQLAlchemy models."""

from shared.models.base import Base
from shared.models.milestone import Milestone
from shared.models.milestone_task import MilestoneTask
from shared.models.task_approval import TaskApproval
from shared.models.time_entry import TimeEntry

__all__ = [
    "Base",
    "Milestone",
    "MilestoneTask",
    "TaskApproval",
    "TimeEntry",
]
