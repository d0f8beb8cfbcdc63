"""
Shared data models for the TradieTime application.
Used by both server and client components.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from shared.utils import format_datetime, parse_datetime


class TimerPhase(Enum):
    """Phases of the client-side timer state machine"""
    IDLE = "idle"
    RUNNING = "running"
    SAVING = "saving"
    DISCARDING = "discarding"

    @property
    def is_transient(self) -> bool:
        """True while a stop or discard call is awaiting the service"""
        return self in (TimerPhase.SAVING, TimerPhase.DISCARDING)

    @classmethod
    def is_valid_transition(cls, from_phase: 'TimerPhase', to_phase: 'TimerPhase') -> bool:
        """Check if phase transition is valid"""
        if from_phase == to_phase:
            return True

        # Valid transitions:
        # IDLE -> RUNNING (start succeeded, or reconcile found an open entry)
        # RUNNING -> SAVING / DISCARDING (stop / discard issued)
        # SAVING / DISCARDING -> IDLE (call succeeded)
        # SAVING / DISCARDING -> RUNNING (call failed, revert)
        # RUNNING -> IDLE (reconcile found no open entry)

        valid_transitions = {
            cls.IDLE: [cls.RUNNING],
            cls.RUNNING: [cls.SAVING, cls.DISCARDING, cls.IDLE],
            cls.SAVING: [cls.IDLE, cls.RUNNING],
            cls.DISCARDING: [cls.IDLE, cls.RUNNING],
        }

        return to_phase in valid_transitions.get(from_phase, [])


class EntryOrigin(Enum):
    """How a time entry was recorded"""
    TIMER = "timer"
    MANUAL = "manual"


@dataclass
class TimeEntry:
    """A record of worked time. Open while end_time is None."""
    id: Optional[str] = None
    user_id: Optional[str] = None
    job_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    hourly_rate: Optional[float] = None
    origin: str = EntryOrigin.TIMER.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def earnings(self) -> float:
        """Pay for a closed entry at its hourly rate; 0 when open or unrated"""
        if self.is_open or not self.hourly_rate or not self.duration_minutes:
            return 0.0
        return self.duration_minutes / 60 * self.hourly_rate

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API serialization"""
        data = asdict(self)
        for key in ('start_time', 'end_time', 'created_at', 'updated_at'):
            if data[key] is not None:
                data[key] = format_datetime(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimeEntry':
        """Create TimeEntry from dictionary (API response or DB row)"""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for key in ('start_time', 'end_time', 'created_at', 'updated_at'):
            if isinstance(known.get(key), str):
                known[key] = parse_datetime(known[key])
        if known.get('duration_minutes') is not None:
            known['duration_minutes'] = int(known['duration_minutes'])
        if known.get('hourly_rate') is not None:
            known['hourly_rate'] = float(known['hourly_rate'])
        return cls(**known)


@dataclass
class Job:
    """Minimal job record used by the timer's job selector"""
    id: Optional[str] = None
    title: str = ""
    status: str = "in_progress"
    hourly_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Job':
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# API Request/Response Models
@dataclass
class CreateEntryRequest:
    """API request to create a time entry (open when end_time is None)"""
    job_id: str
    start_time: str  # ISO timestamp
    description: Optional[str] = None
    notes: Optional[str] = None
    end_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    hourly_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class UpdateEntryRequest:
    """API request to close an open time entry"""
    end_time: str  # ISO timestamp
    duration_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ApiResponse:
    """Standard API response wrapper"""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Configuration models
@dataclass
class ServerConfig:
    """Client-side connection configuration with validation"""
    server_url: str = ""
    api_key: str = ""
    timeout: int = 10  # seconds
    tick_interval_ms: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration after initialization"""
        if self.server_url:
            if not self.server_url.startswith(('http://', 'https://')):
                raise ValueError("Invalid server URL: must start with http:// or https://")
            self.server_url = self.server_url.rstrip('/')

        if not (1 <= self.timeout <= 120):
            raise ValueError(f"Timeout must be between 1 and 120 seconds, got {self.timeout}")

        if not (250 <= self.tick_interval_ms <= 5000):
            raise ValueError(f"Tick interval must be between 250 and 5000 ms, got {self.tick_interval_ms}")

    @property
    def is_configured(self) -> bool:
        return bool(self.server_url and self.api_key)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerConfig':
        return cls(**data)


@dataclass
class TimeStats:
    """Aggregated hours and earnings for dashboards.

    weekday_hours is Sunday-first. job_hours and job_earnings cover the
    current month and are keyed by job id.
    """
    today_hours: float = 0.0
    week_hours: float = 0.0
    month_hours: float = 0.0
    weekday_hours: list = field(default_factory=lambda: [0.0] * 7)
    today_earnings: float = 0.0
    week_earnings: float = 0.0
    month_earnings: float = 0.0
    job_hours: dict = field(default_factory=dict)
    job_earnings: dict = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
