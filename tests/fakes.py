"""In-memory stand-ins for the remote time-entry service and the wall clock."""

import uuid
from datetime import datetime, timedelta, timezone

from shared.exceptions import Conflict, NotFound, ValidationFailure
from shared.models import EntryOrigin, Job, ServerConfig, TimeEntry
from shared.utils import ceil_minutes

T0 = datetime(2024, 5, 15, 9, 0, 0, tzinfo=timezone.utc)  # a Wednesday


class FakeClock:
    """Callable now() source for TimerClock that only moves when told to"""

    def __init__(self, now: datetime = T0):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeTimeEntryService:
    """
    Behaves like the server for a single user: at most one open entry,
    404 for missing entries, 409 on a second open entry.

    Queue failures with ``fail(method, error)``; the next call to that method
    raises it instead of running.
    """

    def __init__(self, jobs=None):
        self.config = ServerConfig(server_url="http://fake", api_key="test-key")
        self.entries = {}
        self.jobs = jobs if jobs is not None else [Job(id="job-1", title="Kitchen Reno", hourly_rate=90.0),
                                                    Job(id="job-2", title="Bathroom")]
        self.calls = []
        self._failures = {}

    def fail(self, method: str, error: Exception) -> None:
        self._failures.setdefault(method, []).append(error)

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    def call_names(self):
        return [call[0] for call in self.calls]

    def open_entries(self):
        return [e for e in self.entries.values() if e.is_open]

    def add_entry(self, job_id: str, start_time: datetime, end_time: datetime = None,
                  hourly_rate: float = None) -> TimeEntry:
        """Seed an entry directly, as if another device created it"""
        entry = TimeEntry(
            id=str(uuid.uuid4()), user_id="user-1", job_id=job_id,
            start_time=start_time, end_time=end_time,
            duration_minutes=ceil_minutes((end_time - start_time).total_seconds()) if end_time else None,
            hourly_rate=hourly_rate,
        )
        self.entries[entry.id] = entry
        return entry

    def update_config(self, config):
        self.config = config

    def get_server_info(self):
        self._record('get_server_info')
        return {'company_name': 'Fake Trades Co'}

    def get_active_entry(self):
        self._record('get_active_entry')
        open_entries = self.open_entries()
        return open_entries[0] if open_entries else None

    def create_entry(self, job_id, start_time, description=None, end_time=None,
                     duration_minutes=None, notes=None, hourly_rate=None):
        self._record('create_entry', job_id, start_time)
        if end_time is None and self.open_entries():
            raise Conflict("An active timer is already running", 409)
        if end_time is not None and end_time < start_time:
            raise ValidationFailure("end_time must not be before start_time", 400)
        if hourly_rate is None:
            hourly_rate = next((j.hourly_rate for j in self.jobs if j.id == job_id), None)

        entry = TimeEntry(
            id=str(uuid.uuid4()), user_id="user-1", job_id=job_id,
            start_time=start_time, end_time=end_time,
            duration_minutes=duration_minutes if end_time else None,
            description=description, notes=notes,
            hourly_rate=hourly_rate,
            origin=EntryOrigin.MANUAL.value if end_time else EntryOrigin.TIMER.value,
        )
        self.entries[entry.id] = entry
        return entry

    def update_entry(self, entry_id, end_time, duration_minutes):
        self._record('update_entry', entry_id, end_time, duration_minutes)
        entry = self.entries.get(entry_id)
        if entry is None or not entry.is_open:
            raise NotFound("Time entry not found", 404)
        entry.end_time = end_time
        entry.duration_minutes = duration_minutes
        return entry

    def delete_entry(self, entry_id):
        self._record('delete_entry', entry_id)
        if self.entries.pop(entry_id, None) is None:
            raise NotFound("Time entry not found", 404)

    def list_entries(self, start_date=None, end_date=None, job_id=None):
        self._record('list_entries', start_date, end_date, job_id)
        result = []
        for entry in self.entries.values():
            day = entry.start_time.date()
            if start_date and day < start_date:
                continue
            if end_date and day > end_date:
                continue
            if job_id and entry.job_id != job_id:
                continue
            result.append(entry)
        return sorted(result, key=lambda e: e.start_time, reverse=True)

    def list_jobs(self):
        self._record('list_jobs')
        return list(self.jobs)

    def close(self):
        pass
