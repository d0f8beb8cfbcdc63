"""Client package for TradieTime application.

Provides the time-entry service client, the timer state machine and the
per-screen application layer. The Qt window lives in client.gui_app.
"""
from .api_client import TimeEntryService
from .reconciler import SessionReconciler
from .timer_client import TimeTrackingClient
from .timer_clock import TimerClock
from .timer_machine import TimerStateMachine

__all__ = ["TimeEntryService", "TimeTrackingClient", "TimerStateMachine", "SessionReconciler", "TimerClock"]
