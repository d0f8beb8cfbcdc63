"""
Timer clock for TradieTime.

Elapsed time is always recomputed as ``now - start_time``. Nothing here is
incremented per tick, so a suspended process shows the right value the moment
it is polled again.
"""

from datetime import datetime
from typing import Callable, Optional

from shared.utils import ceil_minutes, ensure_utc, utc_now


def elapsed_seconds(start_time: Optional[datetime], now: datetime) -> int:
    """Whole seconds between start_time and now, never negative"""
    if start_time is None:
        return 0
    delta = (ensure_utc(now) - ensure_utc(start_time)).total_seconds()
    return max(0, int(delta))


def duration_minutes_for(start_time: datetime, end_time: datetime) -> int:
    """Minutes credited for a session, rounded up to the next whole minute.

    Uses the exact span, so anything longer than zero counts as a minute.
    """
    return ceil_minutes((ensure_utc(end_time) - ensure_utc(start_time)).total_seconds())


def format_clock(seconds: int) -> str:
    """Render seconds as HH:MM:SS; the hour field grows past 99 if needed"""
    seconds = max(0, int(seconds))
    hrs, rem = divmod(seconds, 3600)
    mins, secs = divmod(rem, 60)
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"


class TimerClock:
    """Shared time source for the timer core.

    ``now_fn`` must return an aware datetime; tests inject a fixed clock.
    """

    def __init__(self, now_fn: Callable[[], datetime] = utc_now):
        self._now_fn = now_fn

    def now(self) -> datetime:
        return ensure_utc(self._now_fn())

    def elapsed(self, start_time: Optional[datetime]) -> int:
        return elapsed_seconds(start_time, self.now())

    def formatted(self, start_time: Optional[datetime]) -> str:
        return format_clock(self.elapsed(start_time))
