"""Tests for the session clock — windows, boundaries, rollover and countdown."""

from datetime import datetime

import pytest

from obsidian.guard.session_clock import compute_session, day_key, format_countdown


class TestWindows:
    @pytest.mark.parametrize(
        "hour, minute, session, status",
        [
            (7, 0, "ASIA", "SELECTIVE"),
            (15, 59, "ASIA", "SELECTIVE"),
            (16, 0, "EUROPE", "TRADE"),
            (20, 59, "EUROPE", "TRADE"),
            (21, 0, "EUROPE + US OVERLAP", "TRADE"),
            (23, 59, "EUROPE + US OVERLAP", "TRADE"),
            (0, 30, "EUROPE + US OVERLAP", "TRADE"),
            (1, 0, "US", "TRADE"),
            (5, 59, "US", "TRADE"),
            (6, 0, "OFF-PEAK", "WAIT"),
            (6, 59, "OFF-PEAK", "WAIT"),
        ],
    )
    def test_session_by_local_time(self, hour, minute, session, status):
        info = compute_session(datetime(2026, 3, 10, hour, minute))
        assert info.session == session
        assert info.status == status


class TestNextChange:
    def test_asia_ends_at_16(self):
        info = compute_session(datetime(2026, 3, 10, 9, 30))
        assert info.next_change_at == datetime(2026, 3, 10, 16, 0)
        assert info.countdown == "06:30:00"

    def test_overlap_before_midnight_rolls_to_next_day(self):
        info = compute_session(datetime(2026, 3, 31, 22, 15, 30))
        assert info.next_change_at == datetime(2026, 4, 1, 1, 0)
        assert info.countdown == "02:44:30"

    def test_overlap_after_midnight_same_day(self):
        info = compute_session(datetime(2026, 3, 10, 0, 45))
        assert info.next_change_at == datetime(2026, 3, 10, 1, 0)

    def test_off_peak_ends_at_7(self):
        info = compute_session(datetime(2026, 3, 10, 6, 59, 59))
        assert info.next_change_at == datetime(2026, 3, 10, 7, 0)
        assert info.countdown == "00:00:01"


class TestCountdown:
    def test_floors_at_zero(self):
        assert format_countdown(0) == "00:00:00"
        assert format_countdown(-12.5) == "00:00:00"

    def test_formats_hours(self):
        assert format_countdown(3 * 3600 + 5 * 60 + 9.9) == "03:05:09"


def test_day_key():
    assert day_key(datetime(2026, 1, 5, 23, 59)) == "2026-01-05"
