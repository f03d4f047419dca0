"""Tests for the regular-session gate used by the order monitor."""

from datetime import datetime, timezone

from execution.market_hours import ET, is_market_open, next_market_open


def test_open_midday_weekday() -> None:
    assert is_market_open(datetime(2024, 6, 12, 12, 0, tzinfo=ET))


def test_session_boundaries() -> None:
    assert is_market_open(datetime(2024, 6, 12, 9, 30, tzinfo=ET))
    assert not is_market_open(datetime(2024, 6, 12, 9, 29, tzinfo=ET))
    assert not is_market_open(datetime(2024, 6, 12, 16, 0, tzinfo=ET))


def test_weekend_closed() -> None:
    assert not is_market_open(datetime(2024, 6, 15, 12, 0, tzinfo=ET))


def test_utc_input_converted() -> None:
    # 14:00 UTC in June is 10:00 EDT
    assert is_market_open(datetime(2024, 6, 12, 14, 0, tzinfo=timezone.utc))
    assert not is_market_open(datetime(2024, 6, 12, 21, 0, tzinfo=timezone.utc))


def test_next_open_same_day_before_bell() -> None:
    nxt = next_market_open(datetime(2024, 6, 12, 8, 0, tzinfo=ET))
    assert (nxt.day, nxt.hour, nxt.minute) == (12, 9, 30)


def test_next_open_skips_weekend() -> None:
    nxt = next_market_open(datetime(2024, 6, 14, 17, 0, tzinfo=ET))
    assert nxt.weekday() == 0
    assert (nxt.month, nxt.day, nxt.hour, nxt.minute) == (6, 17, 9, 30)
