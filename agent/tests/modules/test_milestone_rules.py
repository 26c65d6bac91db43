"""Tests for the pure status/progress rules.

Covers: half-up rounding, the status→progress mapping, normalised progress
nudges, and every branch of the milestone status resolver.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from modules.milestones.rules import (
    AdjustProgress,
    SetStatus,
    apply_task_change,
    entry_minutes,
    hours_from_minutes,
    percent,
    resolve_status,
    round_half_up,
)
from shared.errors import ValidationError


class TestRounding:
    @pytest.mark.parametrize("value,expected", [
        (87.5, 88),
        (12.5, 13),
        (0.5, 1),
        (66.666, 67),
        (33.333, 33),
        (0, 0),
        (100, 100),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    @pytest.mark.parametrize("part,whole,expected", [
        (1, 4, 25),
        (1, 8, 13),   # 12.5 rounds up, unlike round()
        (3, 8, 38),   # 37.5
        (2, 3, 67),
        (1, 3, 33),
        (4, 4, 100),
        (0, 5, 0),
        (0, 0, 0),
    ])
    def test_percent(self, part, whole, expected):
        assert percent(part, whole) == expected


class TestSetStatus:
    @pytest.mark.parametrize("status,expected_progress", [
        ("pending", 0),
        ("in_progress", 50),
        ("completed", 100),
    ])
    def test_status_sets_mapped_progress(self, status, expected_progress):
        assert apply_task_change("pending", 75, SetStatus(status)) == (status, expected_progress)

    def test_cancelled_keeps_progress(self):
        assert apply_task_change("in_progress", 40, SetStatus("cancelled")) == ("cancelled", 40)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            apply_task_change("pending", 0, SetStatus("done"))

    def test_on_hold_is_not_a_task_status(self):
        with pytest.raises(ValidationError):
            apply_task_change("pending", 0, SetStatus("on_hold"))


class TestAdjustProgress:
    def test_nudge_from_pending_moves_to_in_progress(self):
        """A pending task at 75% can no longer exist: status follows progress."""
        assert apply_task_change("pending", 50, AdjustProgress(25)) == ("in_progress", 75)

    def test_capped_at_100_and_completed(self):
        assert apply_task_change("in_progress", 75, AdjustProgress(50)) == ("completed", 100)

    def test_floored_at_0_and_pending(self):
        assert apply_task_change("in_progress", 25, AdjustProgress(-50)) == ("pending", 0)

    def test_nudge_down_from_completed_reopens(self):
        assert apply_task_change("completed", 100, AdjustProgress(-25)) == ("in_progress", 75)

    def test_cancelled_task_cannot_be_adjusted(self):
        with pytest.raises(ValidationError):
            apply_task_change("cancelled", 50, AdjustProgress(25))


class TestResolveStatus:
    @pytest.mark.parametrize("current", ["pending", "in_progress"])
    def test_full_progress_completes(self, current):
        assert resolve_status(100, 0, current) == "completed"

    @pytest.mark.parametrize("current", ["completed", "on_hold", "cancelled"])
    def test_full_progress_respects_terminal_and_hold(self, current):
        assert resolve_status(100, 0, current) is None

    def test_partial_progress_starts_pending_milestone(self):
        assert resolve_status(25, 0, "pending") == "in_progress"

    @pytest.mark.parametrize("current", ["in_progress", "on_hold", "cancelled", "completed"])
    def test_partial_progress_leaves_other_statuses(self, current):
        assert resolve_status(25, 1, current) is None

    def test_zero_progress_reverts_idle_milestone(self):
        assert resolve_status(0, 0, "in_progress") == "pending"

    def test_zero_progress_keeps_in_progress_while_work_is_active(self):
        assert resolve_status(0, 2, "in_progress") is None

    def test_zero_progress_pending_unchanged(self):
        assert resolve_status(0, 0, "pending") is None

    def test_zero_progress_does_not_reopen_completed(self):
        assert resolve_status(0, 0, "completed") is None

    @pytest.mark.parametrize("current", ["pending", "in_progress", "on_hold", "completed"])
    def test_empty_milestone_keeps_status(self, current):
        assert resolve_status(0, 0, current, total=0) is None

    def test_non_empty_milestone_still_resolves(self):
        assert resolve_status(0, 0, "in_progress", total=2) == "pending"


class TestTimeTracking:
    START = datetime(2026, 10, 16, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("elapsed,minutes", [
        (timedelta(minutes=90), 90),
        (timedelta(minutes=12, seconds=30), 13),
        (timedelta(minutes=12, seconds=29), 12),
        (timedelta(seconds=0), 0),
    ])
    def test_entry_minutes(self, elapsed, minutes):
        assert entry_minutes(self.START, self.START + elapsed) == minutes

    def test_clock_skew_never_goes_negative(self):
        assert entry_minutes(self.START, self.START - timedelta(minutes=5)) == 0

    def test_hours_from_minutes(self):
        assert hours_from_minutes([90, 45, None]) == 2.25

    def test_no_entries(self):
        assert hours_from_minutes([]) == 0
