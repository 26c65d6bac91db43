"""Tests for task time tracking — timers, manual logs, derived actual_hours."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from modules.milestones.task_store import TaskStore
from modules.milestones.tools import MilestoneTrackerTools
from shared.auth import Actor
from shared.errors import AuthError, NotFoundError, ValidationError
from shared.models.time_entry import TimeEntry
from tests.conftest import (
    make_execute_side_effect,
    make_task,
    make_time_entry,
    result_of,
)


@pytest.fixture
def store(mock_session_factory):
    return TaskStore(mock_session_factory, MagicMock())


def _hours_written(session, call_index: int) -> float:
    """actual_hours bound into the UPDATE issued at ``call_index``."""
    stmt = session.execute.call_args_list[call_index][0][0]
    assert str(stmt).startswith("UPDATE milestone_tasks")
    return stmt.compile().params["actual_hours"]


class TestStartTimer:
    @pytest.mark.asyncio
    async def test_starts_running_entry(self, store, mock_db_session, provider):
        task = make_task(status="in_progress")
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(result_of(one=task), result_of(rows=[]))
        )

        entry = await store.start_timer(task.id, provider, description="Wireframes")

        added = mock_db_session.add.call_args[0][0]
        assert added is entry
        assert isinstance(entry, TimeEntry)
        assert entry.is_active is True
        assert entry.ended_at is None
        assert entry.user_id == provider.user_id
        assert entry.task_id == task.id
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_running_timer_is_stopped_and_booked(self, store, mock_db_session, provider):
        task = make_task()
        previous = make_time_entry(
            user_id=provider.user_id,
            started_at=datetime.now(timezone.utc) - timedelta(minutes=30),
        )
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(
                result_of(one=task),
                result_of(rows=[previous]),
                result_of(rows=[30]),
                result_of(),
            )
        )

        await store.start_timer(task.id, provider)

        assert previous.is_active is False
        assert previous.ended_at is not None
        assert previous.duration_minutes == 30
        assert _hours_written(mock_db_session, 3) == 0.5
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_task(self, store, mock_db_session, provider):
        mock_db_session.execute = AsyncMock(return_value=result_of(one=None))

        with pytest.raises(NotFoundError):
            await store.start_timer(uuid.uuid4(), provider)

        mock_db_session.add.assert_not_called()


class TestStopTimer:
    @pytest.mark.asyncio
    async def test_stop_derives_actual_hours_from_entries(self, store, mock_db_session, provider):
        entry = make_time_entry(
            user_id=provider.user_id,
            started_at=datetime.now(timezone.utc) - timedelta(minutes=45),
        )
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(
                result_of(one=entry),
                result_of(rows=[90, 45]),
                result_of(),
            )
        )

        log = await store.stop_timer(entry.id, provider)

        assert log.entry is entry
        assert (entry.is_active, entry.duration_minutes) == (False, 45)
        assert log.actual_hours == 2.25
        assert _hours_written(mock_db_session, 2) == 2.25
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_already_stopped(self, store, mock_db_session, provider):
        entry = make_time_entry(user_id=provider.user_id, is_active=False, duration_minutes=10)
        mock_db_session.execute = AsyncMock(return_value=result_of(one=entry))

        with pytest.raises(ValidationError):
            await store.stop_timer(entry.id, provider)

        assert entry.duration_minutes == 10
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_users_timer(self, store, mock_db_session, provider):
        entry = make_time_entry()
        mock_db_session.execute = AsyncMock(return_value=result_of(one=entry))

        with pytest.raises(AuthError):
            await store.stop_timer(entry.id, provider)

        assert entry.is_active is True

    @pytest.mark.asyncio
    async def test_admin_may_stop_any_timer(self, store, mock_db_session):
        entry = make_time_entry()
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(result_of(one=entry), result_of(rows=[0]))
        )

        await store.stop_timer(entry.id, Actor(uuid.uuid4(), "admin"))

        assert entry.is_active is False

    @pytest.mark.asyncio
    async def test_missing_entry(self, store, mock_db_session, provider):
        mock_db_session.execute = AsyncMock(return_value=result_of(one=None))

        with pytest.raises(NotFoundError):
            await store.stop_timer(uuid.uuid4(), provider)


class TestLogTime:
    @pytest.mark.asyncio
    async def test_logs_finished_span(self, store, mock_db_session, provider):
        task = make_task(status="in_progress")
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(
                result_of(one=task),
                result_of(rows=[90, 30]),
                result_of(),
            )
        )

        log = await store.log_time(task.id, 1.5, provider, description="Client call")

        entry = mock_db_session.add.call_args[0][0]
        assert entry is log.entry
        assert entry.is_active is False
        assert entry.duration_minutes == 90
        assert entry.ended_at - entry.started_at == timedelta(minutes=90)
        assert log.actual_hours == 2.0
        assert _hours_written(mock_db_session, 2) == 2.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hours", [0, -1, 0.001, "soon", None, float("nan")])
    async def test_rejects_bad_hours(self, store, mock_session_factory, provider, hours):
        with pytest.raises(ValidationError):
            await store.log_time(uuid.uuid4(), hours, provider)
        mock_session_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_task(self, store, mock_db_session, provider):
        mock_db_session.execute = AsyncMock(return_value=result_of(one=None))

        with pytest.raises(NotFoundError):
            await store.log_time(uuid.uuid4(), 2, provider)

        mock_db_session.add.assert_not_called()
        mock_db_session.commit.assert_not_awaited()


class TestTimeTools:
    @pytest.fixture
    def tools(self, mock_session_factory):
        return MilestoneTrackerTools(mock_session_factory)

    @pytest.mark.asyncio
    async def test_client_cannot_log_time(self, tools, mock_session_factory, client_actor):
        with pytest.raises(AuthError):
            await tools.log_time(str(uuid.uuid4()), 1, client_actor)
        mock_session_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_boolean_hours_rejected(self, tools, mock_session_factory, provider):
        with pytest.raises(ValidationError):
            await tools.log_time(str(uuid.uuid4()), True, provider)
        mock_session_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_log_time_response(self, tools, mock_db_session, provider):
        task = make_task()
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(result_of(one=task), result_of(rows=[60]))
        )

        result = await tools.log_time(str(task.id), 1, provider)

        assert result["task_id"] == str(task.id)
        assert result["actual_hours"] == 1.0
        assert result["entry"]["duration_minutes"] == 60

    @pytest.mark.asyncio
    async def test_active_entry_none(self, tools, provider):
        assert await tools.get_active_time_entry(provider) == {"entry": None}

    @pytest.mark.asyncio
    async def test_active_entry(self, tools, mock_db_session, provider):
        entry = make_time_entry(user_id=provider.user_id)
        mock_db_session.execute = AsyncMock(return_value=result_of(one=entry))

        result = await tools.get_active_time_entry(provider)

        assert result["entry"]["entry_id"] == str(entry.id)
        assert result["entry"]["is_active"] is True

    @pytest.mark.asyncio
    async def test_list_time_entries(self, tools, mock_db_session):
        task_id = uuid.uuid4()
        entries = [
            make_time_entry(task_id, is_active=False, duration_minutes=30),
            make_time_entry(task_id, is_active=False, duration_minutes=45),
            make_time_entry(task_id),
        ]
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(result_of(one=task_id), result_of(rows=entries))
        )

        result = await tools.list_time_entries(str(task_id))

        assert result["total_minutes"] == 75
        assert len(result["entries"]) == 3

    @pytest.mark.asyncio
    async def test_list_time_entries_missing_task(self, tools, mock_db_session):
        mock_db_session.execute = AsyncMock(return_value=result_of(one=None))

        with pytest.raises(NotFoundError):
            await tools.list_time_entries(str(uuid.uuid4()))
