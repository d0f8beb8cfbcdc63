"""Tests for hours aggregation by day, week and month."""

import unittest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from client import reporter
from shared.exceptions import NetworkFailure
from shared.models import TimeEntry
from tests.fakes import T0, FakeTimeEntryService

UTC = timezone.utc


def closed(start: datetime, minutes: int, job_id="job-1", rate=None) -> TimeEntry:
    return TimeEntry(id=f"e-{start.isoformat()}", job_id=job_id, start_time=start,
                     end_time=start + timedelta(minutes=minutes), duration_minutes=minutes,
                     hourly_rate=rate)


class TestCalendarHelpers(unittest.TestCase):

    def test_week_starts_on_sunday(self):
        self.assertEqual(reporter.week_start(date(2024, 5, 15)), date(2024, 5, 12))
        self.assertEqual(reporter.week_start(date(2024, 5, 12)), date(2024, 5, 12))
        self.assertEqual(reporter.week_start(date(2024, 5, 18)), date(2024, 5, 12))

    def test_sunday_index(self):
        self.assertEqual(reporter.sunday_index(date(2024, 5, 12)), 0)
        self.assertEqual(reporter.sunday_index(date(2024, 5, 18)), 6)

    def test_stats_window_covers_week_crossing_month(self):
        # Saturday 1 June: week began Sunday 26 May
        self.assertEqual(reporter.stats_window(date(2024, 6, 1)), (date(2024, 5, 26), date(2024, 6, 1)))


class TestHours(unittest.TestCase):

    def test_open_entries_are_excluded(self):
        entries = [closed(T0, 90), TimeEntry(id="open", start_time=T0)]
        self.assertEqual(reporter.hours_for(entries), 1.5)

    def test_live_total_includes_running_session(self):
        running = TimeEntry(id="open", start_time=T0)
        self.assertEqual(reporter.hours_for([closed(T0, 60)], running, 1800), 1.5)

    def test_today_week_month(self):
        entries = [
            closed(T0, 60),                          # today (Wed)
            closed(T0 - timedelta(days=2), 120),     # Monday this week
            closed(T0 - timedelta(days=4), 30),      # Saturday last week
            closed(T0 - timedelta(days=20), 45),     # 25 April, last month
        ]
        today = date(2024, 5, 15)
        self.assertEqual(reporter.today_hours(entries, today, UTC), 1.0)
        self.assertEqual(reporter.week_hours(entries, today, UTC), 3.0)
        self.assertEqual(reporter.month_hours(entries, today, UTC), 3.5)

    def test_bucketed_by_local_start_day(self):
        sydney = ZoneInfo("Australia/Sydney")
        # 15:00 UTC on the 14th is 01:00 on the 15th in Sydney
        entry = closed(datetime(2024, 5, 14, 15, 0, tzinfo=UTC), 60)
        self.assertEqual(reporter.today_hours([entry], date(2024, 5, 15), sydney), 1.0)
        self.assertEqual(reporter.today_hours([entry], date(2024, 5, 14), UTC), 1.0)

    def test_session_crossing_midnight_counts_on_start_day(self):
        entry = closed(datetime(2024, 5, 14, 23, 0, tzinfo=UTC), 120)
        self.assertEqual(reporter.today_hours([entry], date(2024, 5, 14), UTC), 2.0)
        self.assertEqual(reporter.today_hours([entry], date(2024, 5, 15), UTC), 0.0)

    def test_weekday_histogram_is_sunday_first(self):
        entries = [
            closed(datetime(2024, 5, 12, 8, tzinfo=UTC), 60),   # Sunday
            closed(datetime(2024, 5, 15, 8, tzinfo=UTC), 90),   # Wednesday
            closed(datetime(2024, 5, 15, 13, tzinfo=UTC), 30),  # Wednesday
        ]
        self.assertEqual(reporter.weekday_histogram(entries, UTC), [1.0, 0.0, 0.0, 2.0, 0.0, 0.0, 0.0])

    def test_hours_by_job(self):
        entries = [closed(T0, 60, "job-1"), closed(T0, 30, "job-2"), closed(T0, 30, "job-1")]
        self.assertEqual(reporter.hours_by_job(entries), {"job-1": 1.5, "job-2": 0.5})

    def test_earnings_use_each_entrys_rate(self):
        entries = [closed(T0, 90, rate=80.0), closed(T0, 20, rate=45.0), closed(T0, 60),
                   TimeEntry(id="open", start_time=T0, hourly_rate=80.0)]
        self.assertAlmostEqual(reporter.earnings_for(entries), 135.0)

    def test_earnings_by_job(self):
        entries = [closed(T0, 30, "job-1", 100.0), closed(T0, 30, "job-2", 60.0), closed(T0, 15, "job-1", 100.0)]
        self.assertEqual(reporter.earnings_by_job(entries), {"job-1": 75.0, "job-2": 30.0})

    def test_round_hours(self):
        self.assertEqual(reporter.round_hours(1.26), 1.3)
        self.assertEqual(reporter.round_hours(0.04), 0.0)


class TestComputeStats(unittest.TestCase):

    def test_compute_stats(self):
        entries = [
            closed(T0, 60),
            closed(T0 - timedelta(days=3), 30),      # Sunday this week
            closed(T0 - timedelta(days=10), 120),    # earlier this month
        ]
        stats = reporter.compute_stats(entries, T0, UTC)
        self.assertEqual(stats.today_hours, 1.0)
        self.assertEqual(stats.week_hours, 1.5)
        self.assertEqual(stats.month_hours, 3.5)
        self.assertEqual(stats.weekday_hours, [0.5, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0])

    def test_compute_stats_earnings_and_job_totals(self):
        entries = [
            closed(T0, 60, "job-1", 90.0),
            closed(T0 - timedelta(days=3), 30, "job-2", 40.0),     # Sunday this week
            closed(T0 - timedelta(days=10), 120, "job-1", 90.0),   # earlier this month
            closed(T0 - timedelta(days=20), 60, "job-2", 40.0),    # last month
        ]
        stats = reporter.compute_stats(entries, T0, UTC)
        self.assertEqual(stats.today_earnings, 90.0)
        self.assertEqual(stats.week_earnings, 110.0)
        self.assertEqual(stats.month_earnings, 290.0)
        self.assertEqual(stats.job_hours, {"job-1": 3.0, "job-2": 0.5})
        self.assertEqual(stats.job_earnings, {"job-1": 270.0, "job-2": 20.0})

    def test_load_stats_requests_padded_window(self):
        service = FakeTimeEntryService()
        service.add_entry("job-1", T0, T0 + timedelta(minutes=30))
        stats, entries = reporter.load_stats(service, T0, UTC)

        self.assertEqual(stats.today_hours, 0.5)
        self.assertEqual(len(entries), 1)
        _, start, end, _ = service.calls[-1]
        self.assertEqual(start, date(2024, 4, 30))
        self.assertEqual(end, date(2024, 5, 16))

    def test_load_stats_degrades_on_failure(self):
        service = FakeTimeEntryService()
        service.fail('list_entries', NetworkFailure("offline"))
        stats, entries = reporter.load_stats(service, T0, UTC)
        self.assertEqual(stats.today_hours, 0.0)
        self.assertEqual(stats.weekday_hours, [0.0] * 7)
        self.assertEqual(entries, [])


if __name__ == '__main__':
    unittest.main()
