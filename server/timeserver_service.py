"""
Server clock for TradieTime.
Keeps an NTP-derived offset so the canonical start and end times written to
time entries come from a synced clock rather than whatever the host reports.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

import ntplib

from shared.logging_config import get_server_logger
from shared.utils import format_datetime

DEFAULT_NTP_SERVERS = ['pool.ntp.org', 'time.cloudflare.com', 'time.google.com']

# Regional pools answer faster; fall back to the global list otherwise
REGIONAL_NTP_SERVERS = {
    'Australia': ['au.pool.ntp.org'],
    'Pacific': ['oceania.pool.ntp.org'],
    'America': ['time.nist.gov'],
    'Europe': ['europe.pool.ntp.org'],
    'Asia': ['asia.pool.ntp.org'],
}


class ServerClock:
    """NTP-corrected UTC clock with an optional background resync loop"""

    def __init__(self, timezone_name: str = 'UTC', sync_interval: int = 300,
                 ntp_servers: Optional[List[str]] = None):
        self.logger = get_server_logger()
        self.timezone_name = timezone_name
        self.sync_interval = sync_interval
        self.ntp_servers = ntp_servers or self.servers_for_timezone(timezone_name)
        self.sync_offset = 0.0  # seconds to add to time.time()
        self.current_server: Optional[str] = None
        self.last_sync_time: Optional[datetime] = None
        self.running = False
        self._stop_event = threading.Event()
        self._sync_thread: Optional[threading.Thread] = None

    @staticmethod
    def servers_for_timezone(tz_name: str) -> List[str]:
        region = tz_name.split('/')[0] if '/' in tz_name else tz_name
        return REGIONAL_NTP_SERVERS.get(region, []) + DEFAULT_NTP_SERVERS

    def now_utc(self) -> datetime:
        """Current UTC time with the NTP offset applied"""
        return datetime.fromtimestamp(time.time() + self.sync_offset, tz=timezone.utc)

    def sync_once(self) -> Dict:
        """Query NTP servers in order until one answers"""
        client = ntplib.NTPClient()
        for server in self.ntp_servers:
            try:
                response = client.request(server, version=3, timeout=2)
            except (ntplib.NTPException, OSError) as e:
                self.logger.warning(f"Failed to sync with {server}: {e}")
                continue

            self.sync_offset = response.offset
            self.current_server = server
            self.last_sync_time = datetime.now(timezone.utc)
            return {
                'success': True,
                'server': server,
                'offset': self.sync_offset,
                'synced_time': format_datetime(self.now_utc()),
            }

        return {'success': False, 'error': 'All NTP servers failed'}

    def start_sync_service(self) -> None:
        """Start the background resync loop"""
        if self.running:
            return
        self.running = True
        self._stop_event.clear()
        self._sync_thread = threading.Thread(target=self._sync_loop, daemon=True)
        self._sync_thread.start()
        self.logger.info(f"Clock sync started using {', '.join(self.ntp_servers)}")

    def stop_sync_service(self) -> None:
        self.running = False
        self._stop_event.set()
        if self._sync_thread:
            self._sync_thread.join(timeout=1)

    def _sync_loop(self) -> None:
        while self.running:
            result = self.sync_once()
            if result.get('success'):
                self.logger.info(f"Clock synced with {result['server']} (offset {result['offset']:+.3f}s)")
            else:
                self.logger.warning(f"Clock sync failed: {result['error']}")
            if self._stop_event.wait(self.sync_interval):
                break

    def get_sync_status(self) -> Dict:
        return {
            'timezone': self.timezone_name,
            'current_server': self.current_server,
            'last_sync': format_datetime(self.last_sync_time) if self.last_sync_time else None,
            'sync_offset': self.sync_offset,
            'sync_interval': self.sync_interval,
            'running': self.running,
            'current_time': format_datetime(self.now_utc()),
        }


_server_clock: Optional[ServerClock] = None


def get_server_clock() -> ServerClock:
    """Get the global server clock, creating an unsynced one on first use"""
    global _server_clock
    if _server_clock is None:
        _server_clock = ServerClock()
    return _server_clock


def initialize_server_clock(timezone_name: str = 'UTC', sync_interval: int = 300) -> ServerClock:
    """Create the global server clock once; later calls return the existing one"""
    global _server_clock
    if _server_clock is None:
        _server_clock = ServerClock(timezone_name, sync_interval)
    return _server_clock
