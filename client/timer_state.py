"""Local timer state and transition outcomes. Pure data, no I/O."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from shared.exceptions import TimeTrackingError
from shared.models import TimeEntry, TimerPhase


class NoticeLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """A non-fatal, user-visible message produced by a transition"""
    level: NoticeLevel
    title: str
    message: str
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            'level': self.level.value,
            'title': self.title,
            'message': self.message,
            'retryable': self.retryable,
        }


@dataclass
class TimerState:
    """Client-only timer state, rebuilt from the server on each activation.

    Elapsed time is not stored; the timer clock derives it from
    ``active_entry.start_time``.
    """
    phase: TimerPhase = TimerPhase.IDLE
    active_entry: Optional[TimeEntry] = None
    selected_job_id: Optional[str] = None
    reconciled: bool = False

    def snapshot(self) -> 'TimerState':
        return replace(self, active_entry=replace(self.active_entry) if self.active_entry else None)

    def clear(self) -> None:
        self.phase = TimerPhase.IDLE
        self.active_entry = None


@dataclass
class TransitionResult:
    """Outcome of a state machine action"""
    ok: bool
    phase: TimerPhase
    notice: Optional[Notice] = None
    error: Optional[TimeTrackingError] = None
    reconciled: bool = False


@dataclass
class ReconcileResult:
    """Outcome of fetching the server's open entry"""
    ok: bool
    found: bool = False
    notice: Optional[Notice] = None
    error: Optional[TimeTrackingError] = None
