"""
Timer state machine for TradieTime.

Governs a single time-tracking session:

    idle --start--> running --stop--> saving --ok--> idle
                       |                 +--fail--> running
                       +--discard--> discarding --ok--> idle
                                               +--fail--> running

Every service failure is caught at the transition boundary and turned into a
revert plus a Notice; nothing here raises to the screen. Conflict and NotFound
mean another device changed the timer, so the machine re-reconciles instead of
asking the user to retry.
"""

import threading
from typing import Callable, List, Optional

from shared.exceptions import (Conflict, InvalidTransition, NotFound,
                               ServiceError, TimeTrackingError,
                               ValidationFailure)
from shared.logging_config import get_timer_logger
from shared.models import TimeEntry, TimerPhase

from client.reconciler import SessionReconciler
from client.timer_clock import TimerClock, duration_minutes_for, format_clock
from client.timer_state import (Notice, NoticeLevel, ReconcileResult,
                                TimerState, TransitionResult)

logger = get_timer_logger()

EVENT_STATE = "state"
EVENT_ENTRIES = "entries"

DEFAULT_DESCRIPTION = "Working on job"

STATE_CHANGED_NOTICE = Notice(
    NoticeLevel.WARNING,
    "Timer changed",
    "Your timer state changed - refreshing.",
)


def _failure_notice(title: str, error: TimeTrackingError) -> Notice:
    if error.retryable:
        return Notice(NoticeLevel.ERROR, title, "Please try again.", retryable=True)
    return Notice(NoticeLevel.ERROR, title, error.message or "Please try again.")


class TimerStateMachine:
    """Client-side lifecycle of the user's single open time entry.

    Only one transition may be in flight; a second caller is turned away
    without touching the service. Reads (phase, elapsed, clock text) never
    take the lock, so a tick can run at any time.
    """

    def __init__(self, service, clock: Optional[TimerClock] = None,
                 reconciler: Optional[SessionReconciler] = None):
        self.service = service
        self.clock = clock or TimerClock()
        self.reconciler = reconciler or SessionReconciler(service, self.clock)
        self.state = TimerState()
        self._lock = threading.Lock()
        self._listeners: List[Callable[[str], None]] = []

    # Read-only views
    @property
    def phase(self) -> TimerPhase:
        return self.state.phase

    @property
    def active_entry(self) -> Optional[TimeEntry]:
        return self.state.active_entry

    @property
    def elapsed_seconds(self) -> int:
        entry = self.state.active_entry
        return self.clock.elapsed(entry.start_time) if entry else 0

    @property
    def clock_text(self) -> str:
        return format_clock(self.elapsed_seconds)

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def can_start(self) -> bool:
        return (self.state.reconciled and self.state.phase == TimerPhase.IDLE
                and not self.is_busy)

    @property
    def can_stop(self) -> bool:
        return self.state.phase == TimerPhase.RUNNING and not self.is_busy

    can_discard = can_stop

    # Listeners
    def add_listener(self, callback: Callable[[str], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[str], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, event: str) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Timer listener error: {e}")

    def _set_phase(self, phase: TimerPhase) -> None:
        if not TimerPhase.is_valid_transition(self.state.phase, phase):
            raise InvalidTransition(f"{self.state.phase.value} -> {phase.value}")
        logger.debug(f"Phase {self.state.phase.value} -> {phase.value}")
        self.state.phase = phase

    def _busy_result(self) -> TransitionResult:
        logger.warning("Transition rejected: another transition is in flight")
        return TransitionResult(ok=False, phase=self.state.phase,
                                error=InvalidTransition("A timer action is already in progress"))

    def _reconcile_locked(self) -> ReconcileResult:
        result = self.reconciler.reconcile(self.state)
        self._notify(EVENT_STATE)
        self._notify(EVENT_ENTRIES)
        return result

    # Reconciliation
    def reconcile(self) -> ReconcileResult:
        """Seed state from the server; refused while a transition is in flight"""
        if not self._lock.acquire(blocking=False):
            logger.debug("Reconcile skipped: transition in flight")
            return ReconcileResult(ok=False, error=InvalidTransition("A timer action is in progress"))
        try:
            return self._reconcile_locked()
        finally:
            self._lock.release()

    def select_job(self, job_id: Optional[str]) -> bool:
        """Choose the job the next session will be tracked against"""
        if self.state.phase != TimerPhase.IDLE:
            logger.debug("Job selection ignored while a timer is running")
            return False
        self.state.selected_job_id = job_id
        self._notify(EVENT_STATE)
        return True

    # Transitions
    def start(self, job_id: Optional[str], description: Optional[str] = None) -> TransitionResult:
        """Open a new entry on the server for job_id"""
        if not job_id:
            logger.info("Start rejected: no job selected")
            return TransitionResult(
                ok=False, phase=self.state.phase,
                notice=Notice(NoticeLevel.WARNING, "Select a Job", "Please select a job to track time for."),
                error=ValidationFailure("A job must be selected before starting a timer"),
            )

        if not self._lock.acquire(blocking=False):
            return self._busy_result()
        try:
            if not self.state.reconciled:
                return TransitionResult(ok=False, phase=self.state.phase,
                                        error=InvalidTransition("Timer state has not been loaded yet"))
            if self.state.phase != TimerPhase.IDLE:
                logger.warning(f"Start ignored in phase {self.state.phase.value}")
                return TransitionResult(ok=False, phase=self.state.phase,
                                        error=InvalidTransition(f"Cannot start while {self.state.phase.value}"))

            try:
                entry = self.service.create_entry(
                    job_id=job_id,
                    start_time=self.clock.now(),
                    description=description or DEFAULT_DESCRIPTION,
                )
            except Conflict as e:
                logger.warning(f"Start conflicted with an open entry on the server: {e}")
                self._reconcile_locked()
                return TransitionResult(ok=False, phase=self.state.phase,
                                        notice=STATE_CHANGED_NOTICE, error=e, reconciled=True)
            except (ServiceError, ValidationFailure) as e:
                logger.error(f"Start failed: {e}")
                return TransitionResult(ok=False, phase=self.state.phase,
                                        notice=_failure_notice("Failed to start timer", e), error=e)

            # Server-assigned id and start_time are authoritative
            self.state.active_entry = entry
            self.state.selected_job_id = entry.job_id or job_id
            self._set_phase(TimerPhase.RUNNING)
            logger.info(f"Timer started: entry {entry.id} for job {self.state.selected_job_id}")
            self._notify(EVENT_STATE)
            return TransitionResult(ok=True, phase=self.state.phase,
                                    notice=Notice(NoticeLevel.INFO, "Timer Started", "Time tracking has begun."))
        finally:
            self._lock.release()

    def stop(self) -> TransitionResult:
        """Close the running entry, crediting whole minutes rounded up"""
        if not self._lock.acquire(blocking=False):
            return self._busy_result()
        try:
            if self.state.phase != TimerPhase.RUNNING or self.state.active_entry is None:
                logger.debug(f"Stop ignored in phase {self.state.phase.value}")
                return TransitionResult(ok=False, phase=self.state.phase,
                                        error=InvalidTransition("No running timer to stop"))

            entry = self.state.active_entry
            end_time = max(self.clock.now(), entry.start_time)
            elapsed = self.clock.elapsed(entry.start_time)
            duration = duration_minutes_for(entry.start_time, end_time)

            self._set_phase(TimerPhase.SAVING)
            self._notify(EVENT_STATE)
            try:
                self.service.update_entry(entry.id, end_time=end_time, duration_minutes=duration)
            except NotFound as e:
                logger.warning(f"Entry {entry.id} vanished before stop: {e}")
                self._set_phase(TimerPhase.RUNNING)
                self._reconcile_locked()
                return TransitionResult(ok=False, phase=self.state.phase,
                                        notice=STATE_CHANGED_NOTICE, error=e, reconciled=True)
            except (ServiceError, ValidationFailure) as e:
                logger.error(f"Stop failed for entry {entry.id}, reverting to running: {e}")
                self._set_phase(TimerPhase.RUNNING)
                self._notify(EVENT_STATE)
                return TransitionResult(ok=False, phase=self.state.phase,
                                        notice=_failure_notice("Failed to save time entry", e), error=e)

            self.state.active_entry = None
            self._set_phase(TimerPhase.IDLE)
            logger.info(f"Timer stopped: entry {entry.id}, {duration} min ({format_clock(elapsed)})")
            self._notify(EVENT_STATE)
            self._notify(EVENT_ENTRIES)
            return TransitionResult(ok=True, phase=self.state.phase,
                                    notice=Notice(NoticeLevel.INFO, "Saved", "Time entry saved successfully!"))
        finally:
            self._lock.release()

    def discard(self) -> TransitionResult:
        """Delete the running entry without recording any time"""
        if not self._lock.acquire(blocking=False):
            return self._busy_result()
        try:
            if self.state.phase != TimerPhase.RUNNING or self.state.active_entry is None:
                logger.debug(f"Discard ignored in phase {self.state.phase.value}")
                return TransitionResult(ok=False, phase=self.state.phase,
                                        error=InvalidTransition("No running timer to discard"))

            entry = self.state.active_entry
            self._set_phase(TimerPhase.DISCARDING)
            self._notify(EVENT_STATE)
            try:
                self.service.delete_entry(entry.id)
            except NotFound as e:
                logger.warning(f"Entry {entry.id} vanished before discard: {e}")
                self._set_phase(TimerPhase.RUNNING)
                self._reconcile_locked()
                return TransitionResult(ok=False, phase=self.state.phase,
                                        notice=STATE_CHANGED_NOTICE, error=e, reconciled=True)
            except (ServiceError, ValidationFailure) as e:
                logger.error(f"Discard failed for entry {entry.id}, reverting to running: {e}")
                self._set_phase(TimerPhase.RUNNING)
                self._notify(EVENT_STATE)
                return TransitionResult(ok=False, phase=self.state.phase,
                                        notice=_failure_notice("Failed to discard timer", e), error=e)

            self.state.active_entry = None
            self._set_phase(TimerPhase.IDLE)
            logger.info(f"Timer discarded: entry {entry.id}")
            self._notify(EVENT_STATE)
            self._notify(EVENT_ENTRIES)
            return TransitionResult(ok=True, phase=self.state.phase,
                                    notice=Notice(NoticeLevel.INFO, "Discarded", "Timer discarded."))
        finally:
            self._lock.release()
