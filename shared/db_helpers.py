"""
Local settings store for the TradieTime client.

Holds connection settings and UI preferences only. Timer state is never
persisted here: it is rebuilt from the server on every activation.
"""

import sqlite3
from pathlib import Path
from typing import Optional

from shared.models import ServerConfig
from shared.utils import get_data_path


class DatabaseException(Exception):
    """Custom exception for database operations"""
    pass


def get_db_path() -> Path:
    """Get the local settings database path"""
    return get_data_path('tradietime.db')


def get_connection() -> sqlite3.Connection:
    """Get a database connection with row factory"""
    conn = sqlite3.connect(str(get_db_path()))
    conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = sqlite3.Row
    return conn


def init_database():
    """Initialize the database with required tables"""
    conn = get_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise DatabaseException(f"Failed to initialize settings database: {e}") from e
    finally:
        conn.close()


def get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get a setting value from the database"""
    conn = get_connection()
    try:
        cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else default
    finally:
        conn.close()


def set_setting(key: str, value: str):
    """Set a setting value in the database"""
    conn = get_connection()
    try:
        conn.execute("""
            INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)
        """, (key, value))
        conn.commit()
    finally:
        conn.close()


def load_server_config() -> ServerConfig:
    """Build ServerConfig from stored settings, falling back to defaults on bad values"""
    try:
        return ServerConfig(
            server_url=get_setting('server_url', ''),
            api_key=get_setting('api_key', ''),
            timeout=int(get_setting('timeout', '10')),
            tick_interval_ms=int(get_setting('tick_interval_ms', '1000')),
        )
    except ValueError:
        return ServerConfig()


def save_server_config(config: ServerConfig):
    """Persist all connection settings"""
    set_setting('server_url', config.server_url)
    set_setting('api_key', config.api_key)
    set_setting('timeout', str(config.timeout))
    set_setting('tick_interval_ms', str(config.tick_interval_ms))
