"""US equity market hours (regular session, 9:30-16:00 America/New_York, weekdays).

Exchange holidays are not modeled.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


MARKET_TZ = ZoneInfo("America/New_York")
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)


def _eastern(now: datetime | None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(MARKET_TZ)


def is_market_open(now: datetime | None = None) -> bool:
    """Whether the regular session is trading at ``now``."""
    eastern = _eastern(now)
    if eastern.weekday() >= 5:
        return False
    return MARKET_OPEN <= eastern.time() < MARKET_CLOSE


def next_market_open(now: datetime | None = None) -> datetime:
    """Next regular session open strictly after ``now``, in UTC."""
    eastern = _eastern(now)
    day = eastern.date()
    if eastern.time() >= MARKET_OPEN:
        day += timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return datetime.combine(day, MARKET_OPEN, tzinfo=MARKET_TZ).astimezone(timezone.utc)
