"""
Session reconciler for TradieTime.

Establishes whether a timer is already running on the server (possibly started
on another device) and seeds the local timer state from it.
"""

from shared.exceptions import TimeTrackingError
from shared.logging_config import get_timer_logger
from shared.models import TimerPhase

from client.timer_clock import TimerClock
from client.timer_state import (Notice, NoticeLevel, ReconcileResult,
                                TimerState)

logger = get_timer_logger()


class SessionReconciler:
    """Fetches the caller's open entry and writes it into a TimerState"""

    def __init__(self, service, clock: TimerClock):
        self.service = service
        self.clock = clock

    def reconcile(self, state: TimerState) -> ReconcileResult:
        """Replace local timer state with the server's view.

        A service failure falls back to idle with a warning notice. The state
        is marked reconciled either way so start can be enabled.
        """
        try:
            entry = self.service.get_active_entry()
        except TimeTrackingError as e:
            logger.warning(f"Reconcile failed, falling back to idle: {e}")
            state.clear()
            state.reconciled = True
            notice = Notice(
                NoticeLevel.WARNING,
                "Couldn't check your timer",
                "We couldn't reach the server to check for a running timer. Pull to refresh.",
                retryable=True,
            )
            return ReconcileResult(ok=False, notice=notice, error=e)

        state.reconciled = True
        if entry is None or not entry.is_open:
            state.clear()
            logger.debug("Reconcile: no open entry on server")
            return ReconcileResult(ok=True, found=False)

        state.phase = TimerPhase.RUNNING
        state.active_entry = entry
        state.selected_job_id = entry.job_id
        logger.info(
            f"Reconcile: resumed entry {entry.id} for job {entry.job_id}, "
            f"running for {self.clock.elapsed(entry.start_time)}s"
        )
        return ReconcileResult(ok=True, found=True)
