"""
US equity regular session: 9:30 AM – 4:00 PM Eastern, weekdays.

Used by the order monitor when ``monitor.market_hours_only`` is set.
Exchange holidays are not modelled.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

ET = ZoneInfo("America/New_York")

MARKET_OPEN_H, MARKET_OPEN_M = 9, 30
MARKET_CLOSE_H, MARKET_CLOSE_M = 16, 0


def _market_open_time(day: datetime) -> datetime:
    return day.replace(hour=MARKET_OPEN_H, minute=MARKET_OPEN_M, second=0, microsecond=0)


def _market_close_time(day: datetime) -> datetime:
    return day.replace(hour=MARKET_CLOSE_H, minute=MARKET_CLOSE_M, second=0, microsecond=0)


def is_market_open(now: datetime | None = None) -> bool:
    """True if *now* (converted to ET) falls within regular market hours on a weekday."""
    now = (now or datetime.now(ET)).astimezone(ET)
    if now.weekday() >= 5:
        return False
    return _market_open_time(now) <= now < _market_close_time(now)


def next_market_open(now: datetime | None = None) -> datetime:
    """Return the next market-open datetime (ET-aware), skipping weekends."""
    now = (now or datetime.now(ET)).astimezone(ET)
    today_open = _market_open_time(now)
    if now < today_open and now.weekday() < 5:
        return today_open

    candidate = _market_open_time(now + timedelta(days=1))
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate
