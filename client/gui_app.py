"""
TradieTime Client GUI Application
The job timer screen: a live clock, job selector, start/stop controls,
hours and earnings for today, this week and this month, and a timesheet.
"""

import sys

from PyQt6.QtCore import QEvent, Qt, QTimer
from PyQt6.QtGui import QAction
from PyQt6.QtWidgets import (QApplication, QComboBox, QDialog, QGridLayout,
                             QGroupBox, QHBoxLayout, QLabel, QMainWindow,
                             QMessageBox, QPushButton, QTableWidget,
                             QTableWidgetItem, QVBoxLayout, QWidget)

import shared
from client.background_worker import TimerWorker
from client.reporter import WEEKDAY_LABELS, round_hours
from client.timer_client import TimeTrackingClient
from shared.logging_config import get_client_logger
from shared.models import ServerConfig, TimeStats, TimerPhase
from ui.dialogs import ManualEntryDialog, ServerConfigDialog
from ui.fonts import fonts

STATUS_STYLES = {
    'info': 'color: green; font-weight: bold;',
    'warning': 'color: #b36b00; font-weight: bold;',
    'error': 'color: red; font-weight: bold;',
}

TIMESHEET_COLUMNS = ['Date', 'Job', 'Start', 'End', 'Minutes', 'Earned']
JOB_COLUMNS = ['Job', 'Hours', 'Earned']

PHASE_TEXT = {
    TimerPhase.IDLE.value: 'Ready',
    TimerPhase.RUNNING.value: '⏱ Tracking time',
    TimerPhase.SAVING.value: '💾 Saving...',
    TimerPhase.DISCARDING.value: '🗑 Discarding...',
}


class TimeTrackingWindow(QMainWindow):
    """Main TradieTime client window"""

    def __init__(self, client: TimeTrackingClient = None) -> None:
        super().__init__()

        self.logger = get_client_logger()
        self.logger.info("Starting TradieTime Client GUI...")

        self.client = client or TimeTrackingClient()
        self.company_name = 'TradieTime'
        self._state = {}
        self._populating_jobs = False

        self.setup_ui()
        self.setup_menu()
        self.setup_worker()

        # Reconcile once the window is on screen
        QTimer.singleShot(10, self.worker.activate)

    def setup_worker(self) -> None:
        config = self.client.service.config
        self.worker = TimerWorker(self.client, tick_interval_ms=config.tick_interval_ms)

        self.worker.state_changed.connect(self.on_state_changed)
        self.worker.notice.connect(self.on_notice)
        self.worker.stats_updated.connect(self.on_stats_updated)
        self.worker.timesheet_updated.connect(self.on_timesheet_updated)
        self.worker.jobs_loaded.connect(self.on_jobs_loaded)
        self.worker.server_info_updated.connect(self.on_server_info_updated)
        self.worker.tick.connect(self.update_clock)
        self.worker.clear_status.connect(self.clear_status_message)

        self.worker.start()
        QTimer.singleShot(500, self.worker.fetch_server_info)

    def setup_ui(self):
        from shared.utils import create_app_icon

        self.setWindowTitle('TradieTime')
        self.setWindowIcon(create_app_icon())
        self.setMinimumSize(520, 760)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)

        main_layout = QVBoxLayout(central_widget)
        main_layout.setContentsMargins(20, 30, 20, 20)
        main_layout.setSpacing(12)

        # Live timer
        self.clock = QLabel('00:00:00')
        self.clock.setFont(fonts["timer"])
        self.clock.setAlignment(Qt.AlignmentFlag.AlignCenter)
        main_layout.addWidget(self.clock)

        self.job_label = QLabel('')
        self.job_label.setFont(fonts["default"])
        self.job_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        main_layout.addWidget(self.job_label)

        # Job selector
        job_title = QLabel('Job:')
        job_title.setFont(fonts["default_bold"])
        main_layout.addWidget(job_title)

        self.job_combo = QComboBox()
        self.job_combo.setFont(fonts["default"])
        self.job_combo.setMinimumHeight(40)
        self.job_combo.currentIndexChanged.connect(self.on_job_selected)
        main_layout.addWidget(self.job_combo)

        # Controls
        btns_row = QHBoxLayout()

        self.start_btn = QPushButton('Start')
        self.start_btn.setMinimumHeight(60)
        self.start_btn.setFont(fonts["large"])
        self.start_btn.clicked.connect(self.start_timer)
        btns_row.addWidget(self.start_btn)

        self.stop_btn = QPushButton('Stop')
        self.stop_btn.setMinimumHeight(60)
        self.stop_btn.setFont(fonts["large"])
        self.stop_btn.clicked.connect(self.stop_timer)
        btns_row.addWidget(self.stop_btn)

        main_layout.addLayout(btns_row)

        self.discard_btn = QPushButton('Discard timer')
        self.discard_btn.setFont(fonts["small"])
        self.discard_btn.setFlat(True)
        self.discard_btn.clicked.connect(self.discard_timer)
        main_layout.addWidget(self.discard_btn, 0, Qt.AlignmentFlag.AlignRight)

        self.status_label = QLabel('Loading...')
        self.status_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.status_label.setFont(fonts["small_bold"])
        self.status_label.setWordWrap(True)
        main_layout.addWidget(self.status_label)

        # Hours summary
        stats_row = QHBoxLayout()
        self.today_label = QLabel('')
        self.week_label = QLabel('')
        self.month_label = QLabel('')
        for label in (self.today_label, self.week_label, self.month_label):
            label.setFont(fonts["stat"])
            label.setAlignment(Qt.AlignmentFlag.AlignCenter)
            stats_row.addWidget(label)
        main_layout.addLayout(stats_row)

        # This week by day, Sunday first
        week_grid = QGridLayout()
        self.weekday_labels = []
        for column, name in enumerate(WEEKDAY_LABELS):
            day = QLabel(name)
            day.setFont(fonts["small"])
            day.setAlignment(Qt.AlignmentFlag.AlignCenter)
            week_grid.addWidget(day, 0, column)

            value = QLabel('0.0')
            value.setFont(fonts["monospace_small"])
            value.setAlignment(Qt.AlignmentFlag.AlignCenter)
            week_grid.addWidget(value, 1, column)
            self.weekday_labels.append(value)
        main_layout.addLayout(week_grid)

        self.earnings_label = QLabel('')
        self.earnings_label.setFont(fonts["small_bold"])
        self.earnings_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        main_layout.addWidget(self.earnings_label)

        # Timesheet
        sheet_group = QGroupBox("Timesheet")
        sheet_layout = QVBoxLayout(sheet_group)
        self.timesheet_table = self._make_table(TIMESHEET_COLUMNS, stretch_column=1)
        sheet_layout.addWidget(self.timesheet_table)
        main_layout.addWidget(sheet_group, 3)

        jobs_group = QGroupBox("This Month by Job")
        jobs_layout = QVBoxLayout(jobs_group)
        self.job_table = self._make_table(JOB_COLUMNS, stretch_column=0)
        jobs_layout.addWidget(self.job_table)
        main_layout.addWidget(jobs_group, 1)

        self.on_stats_updated(TimeStats().to_dict())
        self.apply_button_state()

    def _make_table(self, columns, stretch_column: int) -> QTableWidget:
        table = QTableWidget()
        table.setColumnCount(len(columns))
        table.setHorizontalHeaderLabels(columns)
        header = table.horizontalHeader()
        for column in range(len(columns)):
            mode = header.ResizeMode.Stretch if column == stretch_column else header.ResizeMode.ResizeToContents
            header.setSectionResizeMode(column, mode)
        table.verticalHeader().setVisible(False)
        table.setSelectionBehavior(QTableWidget.SelectionBehavior.SelectRows)
        table.setEditTriggers(QTableWidget.EditTrigger.NoEditTriggers)
        table.setMinimumHeight(100)
        return table

    def setup_menu(self):
        menubar = self.menuBar()

        app_menu = menubar.addMenu('TradieTime')
        refresh_action = QAction('Refresh', self)
        refresh_action.setShortcut('F5')
        refresh_action.triggered.connect(self.refresh)
        app_menu.addAction(refresh_action)

        exit_action = QAction("Quit...", self)
        exit_action.triggered.connect(self.close)
        app_menu.addAction(exit_action)

        time_menu = menubar.addMenu('Time')
        manual_action = QAction('Add Time Entry...', self)
        manual_action.triggered.connect(self.add_manual_entry)
        time_menu.addAction(manual_action)

        sheet_action = QAction('Refresh Timesheet', self)
        sheet_action.triggered.connect(self.refresh_timesheet)
        time_menu.addAction(sheet_action)

        tools_menu = menubar.addMenu('Tools')
        server_config_action = QAction('Server Configuration...', self)
        server_config_action.triggered.connect(self.configure_server)
        tools_menu.addAction(server_config_action)

    # Display
    def update_clock(self):
        """Recompute elapsed time from the entry's start; called on every tick"""
        if self.client.phase == TimerPhase.IDLE:
            self.clock.setText('00:00:00')
        else:
            self.clock.setText(self.client.clock_text)
        self.today_label.setText(f"Today\n{round_hours(self.client.live_today_hours):.1f}h")

    def apply_button_state(self):
        state = self._state
        self.start_btn.setEnabled(bool(state.get('can_start')))
        self.stop_btn.setEnabled(bool(state.get('can_stop')))
        self.discard_btn.setVisible(bool(state.get('can_discard')))
        self.discard_btn.setEnabled(bool(state.get('can_discard')))
        self.job_combo.setEnabled(state.get('phase') == TimerPhase.IDLE.value and not state.get('busy'))

    def on_state_changed(self, state: dict):
        self._state = state
        self.apply_button_state()
        self.update_clock()

        phase = state.get('phase')
        if phase == TimerPhase.IDLE.value:
            self.job_label.setText('')
        else:
            title = self.client.job_title(state.get('selected_job_id'))
            self.job_label.setText(f"Working on: {title}" if title else '')

        if state.get('reconciled') and not self.status_label.styleSheet():
            self.status_label.setText(PHASE_TEXT.get(phase, 'Ready'))

        self._select_job_in_combo(state.get('selected_job_id'))

    def on_notice(self, notice: dict):
        text = notice.get('message', '')
        if notice.get('title'):
            text = f"{notice['title']}: {text}"
        self.set_status_with_autoclear(text, STATUS_STYLES.get(notice.get('level'), ''))

    def on_stats_updated(self, stats: dict):
        self.today_label.setText(f"Today\n{round_hours(stats['today_hours']):.1f}h")
        self.week_label.setText(f"This Week\n{round_hours(stats['week_hours']):.1f}h")
        self.month_label.setText(f"This Month\n{round_hours(stats['month_hours']):.1f}h")
        for label, hours in zip(self.weekday_labels, stats['weekday_hours']):
            label.setText(f"{round_hours(hours):.1f}")
        self.earnings_label.setText(
            f"Earned  today ${stats['today_earnings']:,.2f}  |  "
            f"week ${stats['week_earnings']:,.2f}  |  "
            f"month ${stats['month_earnings']:,.2f}"
        )

    def on_timesheet_updated(self, entries: list, jobs: list):
        self.timesheet_table.setRowCount(len(entries))
        for i, row in enumerate(entries):
            minutes = '' if row['minutes'] is None else str(row['minutes'])
            earned = f"${row['earnings']:,.2f}" if row['earnings'] else ''
            cells = [row['date'], row['job'], row['start'], row['end'], minutes, earned]
            for column, text in enumerate(cells):
                self.timesheet_table.setItem(i, column, QTableWidgetItem(text))
            self.timesheet_table.item(i, 0).setData(Qt.ItemDataRole.UserRole, row['entry_id'])

        self.job_table.setRowCount(len(jobs))
        for i, row in enumerate(jobs):
            self.job_table.setItem(i, 0, QTableWidgetItem(row['job']))
            self.job_table.setItem(i, 1, QTableWidgetItem(f"{round_hours(row['hours']):.1f}"))
            self.job_table.setItem(i, 2, QTableWidgetItem(f"${row['earnings']:,.2f}"))

    def on_jobs_loaded(self, jobs: list):
        self._populating_jobs = True
        try:
            self.job_combo.clear()
            self.job_combo.addItem('Select a job...', None)
            for job in jobs:
                self.job_combo.addItem(job.title, job.id)
        finally:
            self._populating_jobs = False
        self._select_job_in_combo(self.client.selected_job_id)

    def on_server_info_updated(self, server_info: dict):
        self.company_name = str(server_info.get('company_name') or 'TradieTime').strip()
        if self.company_name and self.company_name != 'TradieTime':
            self.setWindowTitle(f'{self.company_name} - TradieTime')
        else:
            self.setWindowTitle('TradieTime')

    def _select_job_in_combo(self, job_id):
        index = self.job_combo.findData(job_id) if job_id else 0
        if index >= 0 and index != self.job_combo.currentIndex():
            self._populating_jobs = True
            try:
                self.job_combo.setCurrentIndex(index)
            finally:
                self._populating_jobs = False

    def clear_status_message(self):
        self.status_label.setStyleSheet('')
        self.status_label.setText(PHASE_TEXT.get(self._state.get('phase'), 'Ready'))

    def set_status_with_autoclear(self, message, style='', delay_seconds=5):
        self.status_label.setText(message)
        self.status_label.setStyleSheet(style)
        self.worker.schedule_status_clear(delay_seconds)

    def _disable_controls(self):
        self.start_btn.setEnabled(False)
        self.stop_btn.setEnabled(False)
        self.discard_btn.setEnabled(False)
        self.job_combo.setEnabled(False)

    # User actions
    def on_job_selected(self, index: int):
        if self._populating_jobs:
            return
        self.client.select_job(self.job_combo.itemData(index))

    def start_timer(self):
        job_id = self.job_combo.currentData()
        if not job_id:
            QMessageBox.warning(self, 'Select a Job', 'Please select a job to track time for.')
            return
        self._disable_controls()
        self.worker.start_timer(job_id)

    def stop_timer(self):
        reply = QMessageBox.question(
            self, 'Stop Timer',
            f"Save {self.client.clock_text} of time?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.Yes
        )
        if reply != QMessageBox.StandardButton.Yes:
            return
        self._disable_controls()
        self.worker.stop_timer()

    def discard_timer(self):
        reply = QMessageBox.question(
            self, 'Discard Timer',
            'Discard this timer? No time will be recorded.',
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No
        )
        if reply != QMessageBox.StandardButton.Yes:
            return
        self._disable_controls()
        self.worker.discard_timer()

    def refresh(self):
        self.worker.reconcile()

    def refresh_timesheet(self):
        self.worker.refresh_stats()

    def add_manual_entry(self):
        dlg = ManualEntryDialog(self.client.jobs, self, selected_job_id=self.client.selected_job_id,
                                now=self.client.clock.now())
        if dlg.exec() == QDialog.DialogCode.Accepted:
            self.worker.add_manual_entry(dlg.get_values())

    def configure_server(self):
        current_config = self.client.service.config
        dlg = ServerConfigDialog(
            self,
            server_url=current_config.server_url,
            api_key=current_config.api_key,
            timeout=current_config.timeout,
        )
        if dlg.exec() != QDialog.DialogCode.Accepted:
            return

        try:
            new_config = ServerConfig(tick_interval_ms=current_config.tick_interval_ms, **dlg.get_values())
        except ValueError as e:
            QMessageBox.warning(self, 'Invalid Configuration', str(e))
            return

        self.worker.update_config(new_config)
        self.set_status_with_autoclear('✅ Server configuration updated')
        QTimer.singleShot(500, self.worker.fetch_server_info)

    # Window lifecycle
    def changeEvent(self, event):
        """Re-check the server when the window regains focus"""
        super().changeEvent(event)
        if event.type() == QEvent.Type.ActivationChange and self.isActiveWindow():
            if self._state.get('reconciled') and not self._state.get('busy'):
                self.worker.reconcile()

    def closeEvent(self, event):
        if hasattr(self, 'worker'):
            self.worker.stop()
            self.worker.wait(2000)
        self.client.service.close()
        super().closeEvent(event)


def main():
    """Main entry point for the TradieTime client application"""
    app = QApplication(sys.argv)

    app.setApplicationName("TradieTime Client")
    app.setApplicationVersion(shared.__VERSION__)

    window = TimeTrackingWindow()
    window.show()

    sys.exit(app.exec())


if __name__ == '__main__':
    main()
