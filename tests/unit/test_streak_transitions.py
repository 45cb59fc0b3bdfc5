"""Streak state machine transitions (pure)."""

from datetime import date

import pytest

from earnloop.earn.streak_service import advance_streak
from earnloop.errors import AlreadyCompleted, StateConflict

TODAY = date(2026, 3, 10)


class TestAdvanceStreak:
    """One check-in applied to every starting state."""

    def test_first_checkin_starts_at_one(self):
        t = advance_streak(0, 0, None, 0, TODAY)
        assert t.current_streak == 1
        assert t.longest_streak == 1
        assert t.last_checkin_date == TODAY
        assert t.saver_used is False

    def test_consecutive_day_increments(self):
        t = advance_streak(4, 4, date(2026, 3, 9), 0, TODAY)
        assert t.current_streak == 5
        assert t.longest_streak == 5

    def test_longest_kept_when_current_lower(self):
        t = advance_streak(2, 10, date(2026, 3, 9), 0, TODAY)
        assert t.current_streak == 3
        assert t.longest_streak == 10

    def test_gap_with_saver_continues_streak(self):
        t = advance_streak(5, 5, date(2026, 3, 8), 1, TODAY)
        assert t.current_streak == 6
        assert t.streak_saver_count == 0
        assert t.saver_used is True
        assert t.longest_streak == 6

    def test_gap_without_saver_resets(self):
        t = advance_streak(5, 5, date(2026, 3, 8), 0, TODAY)
        assert t.current_streak == 1
        assert t.streak_saver_count == 0
        assert t.reset is True
        assert t.longest_streak == 5

    def test_long_gap_consumes_only_one_saver(self):
        t = advance_streak(9, 9, date(2026, 2, 20), 3, TODAY)
        assert t.current_streak == 10
        assert t.streak_saver_count == 2

    def test_same_day_rejected(self):
        with pytest.raises(AlreadyCompleted) as exc_info:
            advance_streak(3, 3, TODAY, 0, TODAY)
        assert isinstance(exc_info.value, StateConflict)

    def test_future_last_checkin_rejected(self):
        with pytest.raises(AlreadyCompleted):
            advance_streak(3, 3, date(2026, 3, 11), 0, TODAY)
