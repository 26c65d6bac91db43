"""Shared test fixtures for the milestone tracker test suite.

Provides mock database sessions, actors, and model factories so module
tests can run without a database.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.auth import Actor
from shared.models.milestone import Milestone
from shared.models.milestone_task import MilestoneTask
from shared.models.task_approval import TaskApproval
from shared.models.time_entry import TimeEntry


# ---------------------------------------------------------------------------
# Database mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db_session():
    """Mock async SQLAlchemy session.

    Supports the common patterns used in tool code:
        session.execute(stmt) -> result
        session.add(obj)
        session.delete(obj)
        session.commit()
    """
    session = AsyncMock()
    session.add = MagicMock()
    # Default: execute returns a result with no rows
    session.execute = AsyncMock(return_value=result_of())
    return session


@pytest.fixture
def mock_session_factory(mock_db_session):
    """Mock async session factory compatible with ``async with factory() as session:``."""

    @asynccontextmanager
    async def _session_ctx():
        yield mock_db_session

    factory = MagicMock(side_effect=lambda: _session_ctx())
    return factory


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def provider():
    return Actor(user_id=uuid.uuid4(), role="provider")


@pytest.fixture
def client_actor():
    return Actor(user_id=uuid.uuid4(), role="client")


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


def make_milestone(**kwargs) -> Milestone:
    now = datetime.now(timezone.utc)
    defaults = dict(
        id=uuid.uuid4(),
        booking_id=uuid.uuid4(),
        title="Discovery",
        description=None,
        status="pending",
        priority="normal",
        weight=1.0,
        progress_percentage=0,
        total_tasks=0,
        completed_tasks=0,
        due_date=None,
        completed_at=None,
        created_by=uuid.uuid4(),
        created_at=now,
        updated_at=now,
    )
    defaults.update(kwargs)
    return Milestone(**defaults)


def make_task(milestone_id: uuid.UUID | None = None, status: str = "pending", **kwargs) -> MilestoneTask:
    now = datetime.now(timezone.utc)
    progress = {"pending": 0, "in_progress": 50, "completed": 100}.get(status, 0)
    defaults = dict(
        id=uuid.uuid4(),
        milestone_id=milestone_id or uuid.uuid4(),
        title="Draft wireframes",
        description=None,
        status=status,
        progress_percentage=progress,
        due_date=None,
        estimated_hours=None,
        actual_hours=None,
        created_by=uuid.uuid4(),
        created_at=now,
        updated_at=now,
    )
    defaults.update(kwargs)
    return MilestoneTask(**defaults)


def make_approval(task_id: uuid.UUID, action: str = "approve", **kwargs) -> TaskApproval:
    defaults = dict(
        id=uuid.uuid4(),
        task_id=task_id,
        action=action,
        feedback=None,
        approved_by=uuid.uuid4(),
        created_at=datetime.now(timezone.utc),
    )
    defaults.update(kwargs)
    return TaskApproval(**defaults)


def make_time_entry(task_id: uuid.UUID | None = None, **kwargs) -> TimeEntry:
    now = datetime.now(timezone.utc)
    defaults = dict(
        id=uuid.uuid4(),
        task_id=task_id or uuid.uuid4(),
        user_id=uuid.uuid4(),
        description=None,
        started_at=now,
        ended_at=None,
        duration_minutes=None,
        is_active=True,
        created_at=now,
    )
    defaults.update(kwargs)
    return TimeEntry(**defaults)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def result_of(one=None, rows: list | None = None):
    """Build a mock execute() result.

    ``one`` backs ``scalar_one_or_none()``; ``rows`` backs ``scalars().all()``.
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = one
    result.scalars.return_value.all.return_value = list(rows or [])
    return result


def make_execute_side_effect(*results):
    """Create an execute side_effect that returns different results per call.

    Usage::

        session.execute = AsyncMock(
            side_effect=make_execute_side_effect(result1, result2)
        )

    Each result should be a MagicMock with the appropriate return values
    (e.g. scalar_one_or_none, scalars().all()).
    """
    call_idx = 0

    async def _side_effect(stmt, *args, **kwargs):
        nonlocal call_idx
        if call_idx < len(results):
            r = results[call_idx]
            call_idx += 1
            return r
        # Fallback: return empty result
        return result_of()

    return _side_effect
