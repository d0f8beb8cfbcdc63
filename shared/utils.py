"""
Shared utility functions for TradieTime.
"""

import math
import sys
import zoneinfo
from datetime import date, datetime, timezone, tzinfo
from pathlib import Path
from typing import Optional, Union

from platformdirs import user_data_dir

APP_NAME = "TradieTime"


def get_resource_path(relative_path: str) -> Path:
    """Get absolute path to resource, works for dev and PyInstaller

    For bundled read-only resources like icons.
    Use get_data_path() for writable data like databases and logs.
    """
    if getattr(sys, 'frozen', False):
        if hasattr(sys, '_MEIPASS'):
            # Onefile mode: bundled resources are in the temp extraction folder
            base_path = Path(sys._MEIPASS)
        else:
            base_path = Path(sys.executable).parent
    else:
        # Running in development - go up from shared/ to project root
        base_path = Path(__file__).parent.parent

    return base_path / relative_path


def get_data_path(relative_path: str) -> Path:
    """Get absolute path to writable data files (databases, logs).

    Always resolves inside the per-user data directory returned by
    ``platformdirs.user_data_dir`` so reinstalling the app never touches
    the local settings database.
    """
    base_path = Path(user_data_dir(APP_NAME))
    base_path.mkdir(parents=True, exist_ok=True)
    return base_path / relative_path


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """Format datetime as ISO 8601 UTC with a trailing Z (wire format)

    Milliseconds are kept only when present so sub-second spans survive.
    """
    dt = ensure_utc(dt)
    timespec = 'milliseconds' if dt.microsecond else 'seconds'
    return dt.isoformat(timespec=timespec).replace('+00:00', 'Z')


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a wire timestamp into an aware UTC datetime, None if invalid"""
    if not dt_str:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(dt_str.replace('Z', '+00:00')))
    except (ValueError, TypeError):
        return None


def ceil_minutes(seconds: float) -> int:
    """Whole minutes for a duration, rounded up so partial minutes are credited"""
    return math.ceil(max(0, seconds) / 60)


def format_date(d: Union[date, str]) -> str:
    """Format date to standard string format"""
    if isinstance(d, date):
        return d.isoformat()
    return str(d)


def parse_date(date_str: Optional[str]) -> Optional[date]:
    """Parse date string, return None if invalid"""
    if not date_str:
        return None
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        return None


def resolve_timezone(tz_name: Optional[str] = None) -> tzinfo:
    """Return the named zone, or the system local zone when no name is given"""
    if tz_name:
        try:
            return zoneinfo.ZoneInfo(tz_name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            pass
    return datetime.now().astimezone().tzinfo


def utc_to_local_datetime(utc_dt: datetime, local_tz: Optional[tzinfo] = None) -> datetime:
    """Convert a UTC datetime to local time for display and day bucketing"""
    return ensure_utc(utc_dt).astimezone(local_tz or resolve_timezone())


def get_icon_path() -> Path:
    """Get path to the application icon file"""
    return get_resource_path('ico.ico')


def create_app_icon():
    """Create QIcon from bundled icon file, with a drawn fallback"""
    from PyQt6.QtCore import Qt
    from PyQt6.QtGui import QBrush, QColor, QIcon, QPainter, QPixmap

    icon_path = get_icon_path()
    if icon_path.exists():
        return QIcon(str(icon_path))

    pixmap = QPixmap(32, 32)
    pixmap.fill(Qt.GlobalColor.transparent)

    painter = QPainter(pixmap)
    painter.setBrush(QBrush(QColor(232, 116, 0)))  # Safety orange circle
    painter.setPen(Qt.PenStyle.NoPen)
    painter.drawEllipse(4, 4, 24, 24)
    painter.end()

    return QIcon(pixmap)
