"""
Remote time-entry service client for TradieTime.
Wraps the REST API in typed calls and maps transport failures and HTTP
status codes onto the shared error taxonomy.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

import requests

import shared
from shared.exceptions import (Conflict, NetworkFailure, NotFound,
                               ValidationFailure)
from shared.logging_config import get_client_logger
from shared.models import (CreateEntryRequest, Job, ServerConfig, TimeEntry,
                           UpdateEntryRequest)
from shared.utils import format_date, format_datetime

logger = get_client_logger()

ENTRIES_PATH = "/api/v1/time-entries"

# Client errors that clear up on their own if the call is repeated
TRANSIENT_STATUSES = (408, 429)


class TimeEntryService:
    """
    Client for the remote time-entry service.

    The caller's identity comes from the bearer API key, so none of the calls
    take a user id: the server decides whose entries are whose.
    """

    def __init__(self, config: ServerConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._session = session or requests.Session()
        self._session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': f'TradieTime-Client/{shared.__VERSION__}'
        })
        self._apply_auth()

    def _apply_auth(self) -> None:
        if self.config.api_key:
            self._session.headers['Authorization'] = f'Bearer {self.config.api_key}'
            logger.debug(f"Session initialized with API key: {self.config.api_key[:8]}...")
        else:
            self._session.headers.pop('Authorization', None)
            logger.debug("No API key configured for session")

    def update_config(self, config: ServerConfig) -> None:
        """Swap connection settings in place"""
        self.config = config
        self._apply_auth()
        logger.info(f"Service configuration updated: {config.server_url}")

    def is_configured(self) -> bool:
        return self.config.is_configured

    def close(self) -> None:
        self._session.close()

    def _request(self, method: str, path: str, require_key: bool = True, **kwargs) -> Any:
        """Issue a request and return the unwrapped ``data`` payload.

        Raises:
            NetworkFailure: not configured, connection error, timeout, 401, 408, 429 or 5xx
            Conflict: 409
            NotFound: 404
            ValidationFailure: any other 4xx
        """
        if not self.config.server_url or (require_key and not self.config.api_key):
            raise NetworkFailure("Server URL or API key not configured")

        url = f"{self.config.server_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self.config.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkFailure(f"Could not reach server: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        error = body.get('error') if isinstance(body, dict) else None

        status = response.status_code
        if status == 409:
            raise Conflict(error or "An active timer already exists", status)
        if status == 404:
            raise NotFound(error or "Time entry not found", status)
        if status == 401:
            logger.warning(f"Unauthorized (401) on {path} - API key may be invalid")
            raise NetworkFailure(error or "Unauthorized", status)
        if status >= 500:
            raise NetworkFailure(error or f"Server error ({status})", status)
        if status in TRANSIENT_STATUSES:
            logger.warning(f"Transient rejection ({status}) on {path}")
            raise NetworkFailure(error or f"Server busy ({status})", status)
        if status >= 400:
            raise ValidationFailure(error or f"Request rejected ({status})", status)

        if not isinstance(body, dict) or not body.get('success', False):
            raise NetworkFailure(error or "Malformed server response", status)
        return body.get('data')

    # Connection
    def check_connection(self) -> bool:
        """Check if server is reachable"""
        try:
            self._request('GET', '/health', require_key=False)
            return True
        except (NetworkFailure, ValidationFailure, NotFound, Conflict) as e:
            logger.debug(f"Connection check failed: {e}")
            return False

    def get_server_info(self) -> Dict[str, Any]:
        return self._request('GET', '/api/v1/info') or {}

    # Time entries
    def get_active_entry(self) -> Optional[TimeEntry]:
        """Return the caller's open entry, or None when no timer is running"""
        data = self._request('GET', f"{ENTRIES_PATH}/active") or {}
        entry = data.get('entry')
        return TimeEntry.from_dict(entry) if entry else None

    def create_entry(self, job_id: str, start_time: datetime,
                     description: Optional[str] = None,
                     end_time: Optional[datetime] = None,
                     duration_minutes: Optional[int] = None,
                     notes: Optional[str] = None,
                     hourly_rate: Optional[float] = None) -> TimeEntry:
        """Create an entry; open unless end_time is given.

        Without hourly_rate the server applies the job's rate.
        """
        payload = CreateEntryRequest(
            job_id=job_id,
            start_time=format_datetime(start_time),
            description=description,
            notes=notes,
            end_time=format_datetime(end_time) if end_time else None,
            duration_minutes=duration_minutes,
            hourly_rate=hourly_rate,
        )
        data = self._request('POST', ENTRIES_PATH, json=payload.to_dict())
        return TimeEntry.from_dict(data)

    def update_entry(self, entry_id: str, end_time: datetime, duration_minutes: int) -> TimeEntry:
        """Close an open entry"""
        payload = UpdateEntryRequest(end_time=format_datetime(end_time),
                                     duration_minutes=duration_minutes)
        data = self._request('PUT', f"{ENTRIES_PATH}/{entry_id}", json=payload.to_dict())
        return TimeEntry.from_dict(data)

    def delete_entry(self, entry_id: str) -> None:
        self._request('DELETE', f"{ENTRIES_PATH}/{entry_id}")

    def list_entries(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                     job_id: Optional[str] = None) -> List[TimeEntry]:
        """List the caller's entries whose start falls within [start_date, end_date]"""
        params = {}
        if start_date:
            params['start'] = format_date(start_date)
        if end_date:
            params['end'] = format_date(end_date)
        if job_id:
            params['job_id'] = job_id

        data = self._request('GET', ENTRIES_PATH, params=params) or {}
        return [TimeEntry.from_dict(item) for item in data.get('entries', [])]

    # Jobs
    def list_jobs(self) -> List[Job]:
        data = self._request('GET', '/api/v1/jobs') or {}
        return [Job.from_dict(item) for item in data.get('jobs', [])]
