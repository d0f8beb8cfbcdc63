"""
Client application layer for TradieTime time tracking.
Scopes the timer screen's state in one object and keeps the UI away from
service calls, reconciliation and aggregation details.
"""

from datetime import datetime, tzinfo
from typing import List, Optional

from shared import db_helpers
from shared.exceptions import ServiceError, ValidationFailure
from shared.logging_config import get_client_logger
from shared.models import Job, ServerConfig, TimeEntry, TimerPhase, TimeStats
from shared.utils import resolve_timezone, utc_to_local_datetime

from client import reporter
from client.api_client import TimeEntryService
from client.timer_clock import TimerClock, duration_minutes_for
from client.timer_machine import EVENT_ENTRIES, TimerStateMachine
from client.timer_state import (Notice, NoticeLevel, ReconcileResult,
                                TransitionResult)

logger = get_client_logger()


class TimeTrackingClient:
    """
    Per-screen application state for time tracking:
    - Timer state machine and reconciler
    - Cached entries and aggregated stats
    - Job list for the selector

    Created on screen activation and dropped on deactivation. Nothing here is
    persisted; it is all re-derivable from the server.
    """

    def __init__(self, service=None, clock: Optional[TimerClock] = None,
                 tz: Optional[tzinfo] = None):
        if service is None:
            db_helpers.init_database()
            service = TimeEntryService(db_helpers.load_server_config())

        self.service = service
        self.clock = clock or TimerClock()
        self.tz = tz or resolve_timezone()
        self.machine = TimerStateMachine(service, self.clock)

        self.stats = TimeStats()
        self.entries: List[TimeEntry] = []
        self.jobs: List[Job] = []

        self.machine.add_listener(self._on_timer_event)

    def _on_timer_event(self, event: str) -> None:
        if event == EVENT_ENTRIES:
            self.refresh_stats()

    # Display state
    @property
    def phase(self) -> TimerPhase:
        return self.machine.phase

    @property
    def active_entry(self) -> Optional[TimeEntry]:
        return self.machine.active_entry

    @property
    def elapsed_seconds(self) -> int:
        return self.machine.elapsed_seconds

    @property
    def clock_text(self) -> str:
        return self.machine.clock_text

    @property
    def selected_job_id(self) -> Optional[str]:
        return self.machine.state.selected_job_id

    @property
    def live_today_hours(self) -> float:
        """Today's closed hours plus the running session if it started today"""
        entry = self.active_entry
        if entry is None:
            return self.stats.today_hours
        today = utc_to_local_datetime(self.clock.now(), self.tz).date()
        if reporter.local_day(entry, self.tz) != today:
            return self.stats.today_hours
        return self.stats.today_hours + self.elapsed_seconds / 3600

    def timesheet_rows(self) -> List[dict]:
        """Loaded entries, newest first, as display rows in local time"""
        rows = []
        for entry in sorted(self.entries, key=lambda e: e.start_time, reverse=True):
            start = utc_to_local_datetime(entry.start_time, self.tz)
            end = utc_to_local_datetime(entry.end_time, self.tz) if entry.end_time else None
            rows.append({
                'entry_id': entry.id,
                'date': start.strftime('%a %d %b'),
                'job': self.job_title(entry.job_id) or entry.job_id or '',
                'start': start.strftime('%H:%M'),
                'end': end.strftime('%H:%M') if end else 'Running',
                'minutes': None if entry.is_open else entry.duration_minutes,
                'earnings': entry.earnings,
            })
        return rows

    def job_breakdown(self) -> List[dict]:
        """This month's hours and earnings per job, most hours first"""
        rows = [{'job': self.job_title(job_id) or job_id or 'No job',
                 'hours': hours,
                 'earnings': self.stats.job_earnings.get(job_id, 0.0)}
                for job_id, hours in self.stats.job_hours.items()]
        return sorted(rows, key=lambda row: row['hours'], reverse=True)

    # Lifecycle
    def activate(self) -> ReconcileResult:
        """Load jobs, then timer state (which refreshes stats). Call when the screen opens."""
        self.refresh_jobs()
        return self.machine.reconcile()

    def reconcile(self) -> ReconcileResult:
        return self.machine.reconcile()

    def refresh_stats(self) -> TimeStats:
        self.stats, self.entries = reporter.load_stats(self.service, self.clock.now(), self.tz)
        return self.stats

    def refresh_jobs(self) -> List[Job]:
        try:
            self.jobs = self.service.list_jobs()
        except (ServiceError, ValidationFailure) as e:
            logger.warning(f"Failed to load jobs: {e}")
        return self.jobs

    def select_job(self, job_id: Optional[str]) -> bool:
        return self.machine.select_job(job_id)

    def job_title(self, job_id: Optional[str]) -> str:
        for job in self.jobs:
            if job.id == job_id:
                return job.title
        return ""

    # User actions
    def start(self, job_id: Optional[str]) -> TransitionResult:
        title = self.job_title(job_id)
        description = f"Working on: {title}" if title else None
        return self.machine.start(job_id, description=description)

    def stop(self) -> TransitionResult:
        return self.machine.stop()

    def discard(self) -> TransitionResult:
        return self.machine.discard()

    def add_manual_entry(self, job_id: Optional[str], start_time: datetime, end_time: datetime,
                         description: Optional[str] = None,
                         hourly_rate: Optional[float] = None) -> TransitionResult:
        """Record a completed block of time after the fact"""
        phase = self.machine.phase
        if not job_id:
            return TransitionResult(
                ok=False, phase=phase,
                notice=Notice(NoticeLevel.WARNING, "Select a Job", "Please select a job for this time entry."),
                error=ValidationFailure("A job is required"),
            )
        if end_time <= start_time:
            return TransitionResult(
                ok=False, phase=phase,
                notice=Notice(NoticeLevel.WARNING, "Invalid Time", "End time must be after start time."),
                error=ValidationFailure("End time must be after start time"),
            )

        duration = duration_minutes_for(start_time, end_time)
        try:
            entry = self.service.create_entry(
                job_id=job_id,
                start_time=start_time,
                end_time=end_time,
                duration_minutes=duration,
                description=description or None,
                hourly_rate=hourly_rate,
            )
        except (ServiceError, ValidationFailure) as e:
            logger.error(f"Failed to add manual entry: {e}")
            return TransitionResult(
                ok=False, phase=phase,
                notice=Notice(NoticeLevel.ERROR, "Error", "Failed to add time entry. Please try again.",
                              retryable=e.retryable),
                error=e,
            )

        logger.info(f"Manual entry {entry.id} added: {duration} min on job {job_id}")
        self.refresh_stats()
        return TransitionResult(ok=True, phase=phase,
                                notice=Notice(NoticeLevel.INFO, "Success", "Time entry added successfully!"))

    # Configuration
    def update_config(self, config: ServerConfig) -> None:
        db_helpers.save_server_config(config)
        self.service.update_config(config)

