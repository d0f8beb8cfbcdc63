"""
Aggregation reporter for TradieTime.

Pure functions over a user's time entries. Everything is recomputed from
scratch on each call; entry volumes are in the hundreds, not millions.
Days are local calendar days of ``start_time`` only, so a session that
crosses midnight is counted entirely on the day it started.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from shared.exceptions import ServiceError, ValidationFailure
from shared.logging_config import get_timer_logger
from shared.models import TimeEntry, TimeStats
from shared.utils import resolve_timezone, utc_to_local_datetime

logger = get_timer_logger()

DAYS_PER_WEEK = 7
WEEKDAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def local_day(entry: TimeEntry, tz: tzinfo) -> date:
    return utc_to_local_datetime(entry.start_time, tz).date()


def sunday_index(d: date) -> int:
    """Weekday index with Sunday as 0"""
    return (d.weekday() + 1) % DAYS_PER_WEEK


def week_start(d: date) -> date:
    """The Sunday on or before d"""
    return d - timedelta(days=sunday_index(d))


def month_start(d: date) -> date:
    return d.replace(day=1)


def hours_for(entries: Iterable[TimeEntry], active_entry: Optional[TimeEntry] = None,
              active_seconds: int = 0) -> float:
    """Sum closed entries' minutes as hours.

    Open entries are in progress, not complete, and are skipped. A caller that
    wants a live total passes the running session explicitly.
    """
    minutes = sum(e.duration_minutes for e in entries
                  if not e.is_open and e.duration_minutes is not None)
    hours = minutes / 60
    if active_entry is not None:
        hours += max(0, active_seconds) / 3600
    return hours


def entries_in_window(entries: Iterable[TimeEntry], start: date, end: date,
                      tz: Optional[tzinfo] = None) -> List[TimeEntry]:
    """Entries whose local start day falls in [start, end]"""
    tz = tz or resolve_timezone()
    return [e for e in entries
            if e.start_time is not None and start <= local_day(e, tz) <= end]


def today_hours(entries: Iterable[TimeEntry], today: date, tz: Optional[tzinfo] = None) -> float:
    return hours_for(entries_in_window(entries, today, today, tz))


def week_hours(entries: Iterable[TimeEntry], today: date, tz: Optional[tzinfo] = None) -> float:
    return hours_for(entries_in_window(entries, week_start(today), today, tz))


def month_hours(entries: Iterable[TimeEntry], today: date, tz: Optional[tzinfo] = None) -> float:
    return hours_for(entries_in_window(entries, month_start(today), today, tz))


def weekday_histogram(entries: Iterable[TimeEntry], tz: Optional[tzinfo] = None) -> List[float]:
    """Hours per weekday, Sunday first, bucketed by local start day"""
    tz = tz or resolve_timezone()
    buckets: List[List[TimeEntry]] = [[] for _ in range(DAYS_PER_WEEK)]
    for entry in entries:
        if entry.start_time is None:
            continue
        buckets[sunday_index(local_day(entry, tz))].append(entry)
    return [hours_for(bucket) for bucket in buckets]


def earnings_for(entries: Iterable[TimeEntry]) -> float:
    """Pay for closed entries at their own hourly rates"""
    return sum(e.earnings for e in entries)


def _group_by_job(entries: Iterable[TimeEntry]) -> Dict[Optional[str], List[TimeEntry]]:
    grouped: Dict[Optional[str], List[TimeEntry]] = defaultdict(list)
    for entry in entries:
        grouped[entry.job_id].append(entry)
    return grouped


def hours_by_job(entries: Iterable[TimeEntry]) -> Dict[Optional[str], float]:
    """Closed hours per job id, for job costing"""
    return {job_id: hours_for(group) for job_id, group in _group_by_job(entries).items()}


def earnings_by_job(entries: Iterable[TimeEntry]) -> Dict[Optional[str], float]:
    return {job_id: earnings_for(group) for job_id, group in _group_by_job(entries).items()}


def round_hours(hours: float) -> float:
    """One decimal place, as shown on dashboards"""
    return round(hours * 10) / 10


def round_money(amount: float) -> float:
    return round(amount, 2)


def stats_window(today: date) -> Tuple[date, date]:
    """Earliest day needed to cover both this week and this month"""
    return min(week_start(today), month_start(today)), today


def compute_stats(entries: Iterable[TimeEntry], now: datetime, tz: Optional[tzinfo] = None) -> TimeStats:
    """Today / week / month hours and earnings, this week's weekday
    histogram, and this month's per-job totals"""
    tz = tz or resolve_timezone()
    entries = list(entries)
    today = utc_to_local_datetime(now, tz).date()
    this_day = entries_in_window(entries, today, today, tz)
    this_week = entries_in_window(entries, week_start(today), today, tz)
    this_month = entries_in_window(entries, month_start(today), today, tz)
    return TimeStats(
        today_hours=today_hours(entries, today, tz),
        week_hours=hours_for(this_week),
        month_hours=month_hours(entries, today, tz),
        weekday_hours=weekday_histogram(this_week, tz),
        today_earnings=round_money(earnings_for(this_day)),
        week_earnings=round_money(earnings_for(this_week)),
        month_earnings=round_money(earnings_for(this_month)),
        job_hours=hours_by_job(this_month),
        job_earnings={job_id: round_money(amount)
                      for job_id, amount in earnings_by_job(this_month).items()},
    )


def load_stats(service, now: datetime, tz: Optional[tzinfo] = None) -> Tuple[TimeStats, List[TimeEntry]]:
    """Fetch the entries needed for dashboards and aggregate them.

    Any service failure degrades to zeroed stats so the timer UI is never
    blocked by reporting.
    """
    tz = tz or resolve_timezone()
    start, end = stats_window(utc_to_local_datetime(now, tz).date())
    # Server filters on UTC dates; widen by a day so local days are complete
    try:
        entries = service.list_entries(start - timedelta(days=1), end + timedelta(days=1))
    except (ServiceError, ValidationFailure) as e:
        logger.warning(f"Could not load time entries for stats: {e}")
        return TimeStats(), []

    return compute_stats(entries, now, tz), entries
