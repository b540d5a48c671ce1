"""
tests/test_progression.py — Progress State Machine & Streaks
=============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from codequest.constants import current_xp_for, level_for_xp
from codequest.engine.progression import next_streak, status_after_run

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


class TestLevelFormula:
    @pytest.mark.parametrize(
        ("total_xp", "level", "current"),
        [(0, 1, 0), (999, 1, 999), (1000, 2, 0), (1050, 2, 50), (2999, 3, 999)],
    )
    def test_level_and_band(self, total_xp, level, current):
        assert level_for_xp(total_xp) == level
        assert current_xp_for(total_xp) == current

    def test_negative_xp_clamps_to_level_one(self):
        assert level_for_xp(-5) == 1
        assert current_xp_for(-5) == 0


class TestStatusTransitions:
    def test_run_starts_a_puzzle(self):
        assert status_after_run("not_started") == "in_progress"
        assert status_after_run("in_progress") == "in_progress"

    def test_run_never_leaves_completed(self):
        assert status_after_run("completed") == "completed"


class TestNextStreak:
    def test_first_activity(self):
        assert next_streak(0, None, NOW) == 1

    def test_same_day_keeps_streak(self):
        assert next_streak(4, NOW - timedelta(hours=3), NOW) == 4

    def test_same_day_from_zero_counts_today(self):
        assert next_streak(0, NOW - timedelta(hours=1), NOW) == 1

    def test_consecutive_day_extends(self):
        assert next_streak(4, NOW - timedelta(days=1), NOW) == 5

    def test_calendar_day_not_24_hours(self):
        late_yesterday = datetime(2026, 3, 9, 23, 59, tzinfo=UTC)
        early_today = datetime(2026, 3, 10, 0, 1, tzinfo=UTC)
        assert next_streak(2, late_yesterday, early_today) == 3

    def test_gap_resets(self):
        assert next_streak(9, NOW - timedelta(days=2), NOW) == 1

    def test_naive_last_active_is_read_as_utc(self):
        naive = (NOW - timedelta(days=1)).replace(tzinfo=None)
        assert next_streak(1, naive, NOW) == 2
