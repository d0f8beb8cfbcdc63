"""
Timer Worker for TradieTime Client
Runs timer transitions and service calls off the UI thread and reports the
results back through Qt signals.
"""

import threading
import time

from PyQt6.QtCore import QThread, pyqtSignal

from client.timer_client import TimeTrackingClient
from shared.exceptions import ServiceError
from shared.logging_config import get_client_logger

logger = get_client_logger()


class TimerWorker(QThread):
    """
    Background worker for the timer screen.

    The QThread loop only emits ticks; the display recomputes elapsed time from
    the entry's start on each tick. Each user action runs on a short-lived
    daemon thread so the UI never waits on the network.
    """

    # UI Update Signals - emitted to main thread
    state_changed = pyqtSignal(dict)   # phase, clock text, job, busy flags
    notice = pyqtSignal(dict)          # Notice.to_dict()
    stats_updated = pyqtSignal(dict)   # TimeStats.to_dict()
    timesheet_updated = pyqtSignal(list, list)  # timesheet rows, per-job rows
    jobs_loaded = pyqtSignal(list)     # [Job, ...]
    server_info_updated = pyqtSignal(dict)

    # Clock and UI signals
    tick = pyqtSignal()
    clear_status = pyqtSignal()

    def __init__(self, client: TimeTrackingClient, tick_interval_ms=1000):
        super().__init__()
        self._running = True
        self.tick_interval_ms = tick_interval_ms
        self._status_clear_time = None
        self.client = client

    def run(self):
        """Tick loop; exits when stop() is called"""
        while self._running:
            try:
                self.tick.emit()

                now = time.time()
                if self._status_clear_time is not None and now >= self._status_clear_time:
                    self.clear_status.emit()
                    self._status_clear_time = None

                time.sleep(self.tick_interval_ms / 1000.0)
            except Exception as e:
                logger.error(f"Tick loop error: {e}")
                time.sleep(1)

    def stop(self) -> None:
        self._running = False

    def update_tick_interval(self, tick_interval_ms: int) -> None:
        self.tick_interval_ms = max(250, tick_interval_ms)

    def schedule_status_clear(self, delay_seconds: int = 5) -> None:
        self._status_clear_time = time.time() + delay_seconds

    def snapshot(self) -> dict:
        """Display state for the timer screen"""
        machine = self.client.machine
        return {
            'phase': self.client.phase.value,
            'clock_text': self.client.clock_text,
            'selected_job_id': self.client.selected_job_id,
            'reconciled': machine.state.reconciled,
            'busy': machine.is_busy,
            'can_start': machine.can_start,
            'can_stop': machine.can_stop,
            'can_discard': machine.can_discard,
        }

    def _run_in_background(self, name: str, target, *args) -> None:
        def runner():
            try:
                target(*args)
            except Exception as e:
                logger.error(f"{name} failed unexpectedly: {e}", exc_info=True)
            finally:
                self.state_changed.emit(self.snapshot())

        self.state_changed.emit(self.snapshot())
        threading.Thread(target=runner, name=f"timer-{name}", daemon=True).start()

    def _emit_stats(self) -> None:
        self.stats_updated.emit(self.client.stats.to_dict())
        self.timesheet_updated.emit(self.client.timesheet_rows(), self.client.job_breakdown())

    def _emit_result(self, result) -> None:
        if result.notice is not None:
            self.notice.emit(result.notice.to_dict())
        self._emit_stats()

    # Requests from the UI thread
    def activate(self) -> None:
        """Load jobs and reconcile the timer, as on screen entry"""
        def work():
            result = self.client.activate()
            self.jobs_loaded.emit(list(self.client.jobs))
            self._emit_result(result)
        self._run_in_background('activate', work)

    def reconcile(self) -> None:
        self._run_in_background('reconcile', lambda: self._emit_result(self.client.reconcile()))

    def start_timer(self, job_id) -> None:
        self._run_in_background('start', lambda: self._emit_result(self.client.start(job_id)))

    def stop_timer(self) -> None:
        self._run_in_background('stop', lambda: self._emit_result(self.client.stop()))

    def discard_timer(self) -> None:
        self._run_in_background('discard', lambda: self._emit_result(self.client.discard()))

    def add_manual_entry(self, values: dict) -> None:
        def work():
            self._emit_result(self.client.add_manual_entry(
                values.get('job_id'), values['start_time'], values['end_time'],
                values.get('description'), values.get('hourly_rate'),
            ))
        self._run_in_background('manual-entry', work)

    def refresh_stats(self) -> None:
        def work():
            self.client.refresh_stats()
            self._emit_stats()
        self._run_in_background('stats', work)

    def fetch_server_info(self) -> None:
        def work():
            try:
                info = self.client.service.get_server_info()
            except ServiceError as e:
                logger.debug(f"Server info unavailable: {e}")
                info = {}
            self.server_info_updated.emit({'company_name': 'TradieTime', **info})
        self._run_in_background('server-info', work)

    def update_config(self, config) -> None:
        def work():
            self.client.update_config(config)
            self.update_tick_interval(config.tick_interval_ms)
            result = self.client.activate()
            self.jobs_loaded.emit(list(self.client.jobs))
            self._emit_result(result)
        self._run_in_background('config', work)
