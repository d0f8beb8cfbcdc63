"""
Error taxonomy for TradieTime time tracking.

Service-call failures derive from ServiceError so the state machine can catch
them at one boundary; local precondition failures derive directly from
TimeTrackingError.
"""

from typing import Optional


class TimeTrackingError(Exception):
    """Base class for all time tracking errors"""
    retryable = False

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ServiceError(TimeTrackingError):
    """A call to the remote time-entry service failed"""
    pass


class NetworkFailure(ServiceError):
    """Transient failure: connection error, timeout, server error or rejected key"""
    retryable = True


class Conflict(ServiceError):
    """The service already holds an open entry for this user"""
    pass


class NotFound(ServiceError):
    """The entry was deleted or closed elsewhere"""
    pass


class ValidationFailure(TimeTrackingError):
    """Request rejected before (or by) the service because its input is invalid"""
    pass


class InvalidTransition(TimeTrackingError):
    """A transition was requested from a phase that does not allow it"""
    pass
