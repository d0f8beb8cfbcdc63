from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from PyQt6.QtCore import QDateTime
from PyQt6.QtWidgets import (QApplication, QComboBox, QDateTimeEdit, QDialog,
                             QDialogButtonBox, QDoubleSpinBox, QFormLayout,
                             QGroupBox, QHBoxLayout, QLabel, QLineEdit,
                             QPushButton, QSpinBox, QVBoxLayout)

from shared.models import Job
from shared.utils import create_app_icon
from ui.fonts import fonts


def set_dialog_icon(dialog):
    """Set the application icon on a dialog"""
    dialog.setWindowIcon(create_app_icon())


def _to_qdatetime(value: datetime) -> QDateTime:
    return QDateTime.fromSecsSinceEpoch(int(value.timestamp()))


def _from_qdatetime(value: QDateTime) -> datetime:
    return datetime.fromtimestamp(value.toSecsSinceEpoch(), tz=timezone.utc)


class ServerConfigDialog(QDialog):
    """Connection settings for the time-entry server"""

    def __init__(self, parent=None, server_url='', api_key='', timeout=10):
        super().__init__(parent)
        self.setWindowTitle("Server Configuration")
        set_dialog_icon(self)
        self.setModal(True)
        self.setMinimumSize(500, 320)

        layout = QVBoxLayout(self)

        server_group = QGroupBox("Server Connection")
        server_layout = QFormLayout(server_group)

        self.server_url_input = QLineEdit(server_url)
        self.server_url_input.setPlaceholderText("http://127.0.0.1:5000")
        self.server_url_input.textChanged.connect(self.validate_inputs)
        server_layout.addRow("Server URL:", self.server_url_input)

        self.api_key_input = QLineEdit(api_key)
        self.api_key_input.setPlaceholderText("your-api-key")
        self.api_key_input.setEchoMode(QLineEdit.EchoMode.Password)

        show_api_btn = QPushButton("Show")
        show_api_btn.setMaximumWidth(60)
        show_api_btn.clicked.connect(self.toggle_api_key_visibility)
        api_layout = QHBoxLayout()
        api_layout.addWidget(self.api_key_input)
        api_layout.addWidget(show_api_btn)
        server_layout.addRow("API Key:", api_layout)

        self.timeout_spin = QSpinBox()
        self.timeout_spin.setMinimum(1)
        self.timeout_spin.setMaximum(120)
        self.timeout_spin.setSuffix(' seconds')
        self.timeout_spin.setValue(timeout)
        server_layout.addRow("Request Timeout:", self.timeout_spin)

        layout.addWidget(server_group)

        self.test_btn = QPushButton("Test Connection")
        self.test_btn.clicked.connect(self.test_connection)
        layout.addWidget(self.test_btn)

        self.status_label = QLabel("")
        layout.addWidget(self.status_label)

        self.button_box = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        self.button_box.accepted.connect(self.accept)
        self.button_box.rejected.connect(self.reject)
        layout.addWidget(self.button_box)

        self.validate_inputs()

    def toggle_api_key_visibility(self):
        """Toggle API key field visibility"""
        if self.api_key_input.echoMode() == QLineEdit.EchoMode.Password:
            self.api_key_input.setEchoMode(QLineEdit.EchoMode.Normal)
            self.sender().setText("Hide")
        else:
            self.api_key_input.setEchoMode(QLineEdit.EchoMode.Password)
            self.sender().setText("Show")

    def validate_inputs(self):
        valid = True
        status_msg = "✅ Configuration looks good"

        server_url = self.server_url_input.text().strip()
        if not server_url:
            valid = False
            status_msg = "❌ Server URL is required"
        elif not server_url.startswith(('http://', 'https://')):
            valid = False
            status_msg = "❌ Server URL must start with http:// or https://"

        self.status_label.setText(status_msg)
        self.button_box.button(QDialogButtonBox.StandardButton.Ok).setEnabled(valid)

    def test_connection(self):
        """Check /health and the API key against the entered server"""
        from client.api_client import TimeEntryService
        from shared.exceptions import ServiceError
        from shared.models import ServerConfig

        try:
            config = ServerConfig(**self.get_values())
        except ValueError as e:
            self.status_label.setText(f"❌ {e}")
            return

        self.test_btn.setText("Testing...")
        self.test_btn.setEnabled(False)
        self.status_label.setText("⏳ Connecting to server...")
        QApplication.processEvents()

        service = TimeEntryService(config)
        try:
            if not service.check_connection():
                self.status_label.setText("❌ Server not running or unreachable")
                return
            if not config.api_key:
                self.status_label.setText("✅ Server reachable (no API key to test)")
                return
            service.get_active_entry()
            info = service.get_server_info() or {}
            self.status_label.setText(f"✅ Connected to {info.get('company_name', 'server')}!")
        except ServiceError as e:
            self.status_label.setText(f"⚠️ Server reachable but request failed: {str(e)[:60]}")
        finally:
            service.close()
            self.test_btn.setText("Test Connection")
            self.test_btn.setEnabled(True)

    def get_values(self) -> Dict[str, Any]:
        return {
            'server_url': self.server_url_input.text().strip(),
            'api_key': self.api_key_input.text().strip(),
            'timeout': self.timeout_spin.value(),
        }


class ManualEntryDialog(QDialog):
    """Record a completed block of time against a job"""

    def __init__(self, jobs: List[Job], parent=None, selected_job_id: Optional[str] = None,
                 now: Optional[datetime] = None):
        super().__init__(parent)
        self.setWindowTitle("Add Time Entry")
        set_dialog_icon(self)
        self.setModal(True)
        self.setMinimumWidth(420)

        now = now or datetime.now(timezone.utc)
        layout = QVBoxLayout(self)

        info_label = QLabel('Times are shown in your local timezone.')
        info_label.setStyleSheet('color: #666;')
        layout.addWidget(info_label)

        form = QFormLayout()

        self.job_combo = QComboBox()
        self.job_combo.setFont(fonts["default"])
        self.job_combo.addItem("Select a job...", None)
        for job in jobs:
            self.job_combo.addItem(job.title, job.id)
        if selected_job_id:
            index = self.job_combo.findData(selected_job_id)
            if index >= 0:
                self.job_combo.setCurrentIndex(index)
        form.addRow("Job:", self.job_combo)

        self.start_edit = QDateTimeEdit(_to_qdatetime(now - timedelta(hours=1)))
        self.start_edit.setCalendarPopup(True)
        self.start_edit.setDisplayFormat('MM-dd-yyyy HH:mm')
        form.addRow("Start:", self.start_edit)

        self.end_edit = QDateTimeEdit(_to_qdatetime(now))
        self.end_edit.setCalendarPopup(True)
        self.end_edit.setDisplayFormat('MM-dd-yyyy HH:mm')
        form.addRow("End:", self.end_edit)

        self.description_input = QLineEdit()
        self.description_input.setPlaceholderText("What did you work on?")
        form.addRow("Description:", self.description_input)

        self.rate_input = QDoubleSpinBox()
        self.rate_input.setRange(0, 10000)
        self.rate_input.setDecimals(2)
        self.rate_input.setPrefix("$")
        self.rate_input.setSpecialValueText("Job rate")  # 0 keeps the job's own rate
        form.addRow("Hourly rate:", self.rate_input)

        layout.addLayout(form)

        button_box = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        button_box.accepted.connect(self.accept)
        button_box.rejected.connect(self.reject)
        layout.addWidget(button_box)

    def get_values(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_combo.currentData(),
            'start_time': _from_qdatetime(self.start_edit.dateTime()),
            'end_time': _from_qdatetime(self.end_edit.dateTime()),
            'description': self.description_input.text().strip(),
            'hourly_rate': self.rate_input.value() or None,
        }
