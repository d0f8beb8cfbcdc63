"""
TradieTime REST API Server
Reference remote time-entry service. Enforces at most one open time entry per
user and derives durations with the same ceiling rule as the client.
"""

import sqlite3
import uuid
from datetime import datetime
from functools import wraps
from typing import Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS

import shared
from server.timeserver_service import get_server_clock, initialize_server_clock
from shared.logging_config import get_server_logger
from shared.models import ApiResponse, EntryOrigin, Job, TimeEntry
from shared.utils import (ceil_minutes, format_datetime, get_data_path,
                          parse_date, parse_datetime)

logger = get_server_logger()

DB_BUSY_TIMEOUT_MS: int = 5000
DEFAULT_SERVER_PORT: int = 5000
WAITRESS_CHANNEL_TIMEOUT: int = 60
WAITRESS_CLEANUP_INTERVAL: int = 30

app = Flask(__name__)
CORS(app)

SERVER_DB = get_data_path('server_tradietime.db')
DEFAULT_API_KEY = 'default-api-key'
DEFAULT_USER_ID = 'default-user'

ENTRY_COLUMNS = ("id, user_id, job_id, start_time, end_time, duration_minutes, "
                 "description, notes, hourly_rate, origin, created_at, updated_at")


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(str(SERVER_DB))
    conn.execute(f"PRAGMA busy_timeout = {DB_BUSY_TIMEOUT_MS}")
    conn.row_factory = sqlite3.Row
    return conn


def get_db() -> sqlite3.Connection:
    """Get database connection (for Flask context)"""
    if 'db' not in g:
        g.db = _connect()
    return g.db


@app.teardown_appcontext
def close_db(error):
    db = g.pop('db', None)
    if db is not None:
        db.close()


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, decl: str) -> None:
    """Add a column to a table created by an older release"""
    columns = [col[1] for col in conn.execute(f"PRAGMA table_info({table})").fetchall()]
    if column not in columns:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl}")


def init_server_db():
    """Initialize server database and seed defaults"""
    conn = _connect()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                status TEXT DEFAULT 'in_progress',
                hourly_rate REAL,
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS time_entries (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                job_id TEXT,
                start_time TEXT NOT NULL,
                end_time TEXT,
                duration_minutes INTEGER,
                description TEXT,
                notes TEXT,
                hourly_rate REAL,
                origin TEXT DEFAULT 'timer',
                device_ts TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (job_id) REFERENCES jobs (id)
            )
        """)
        _ensure_column(conn, 'jobs', 'hourly_rate', 'REAL')
        _ensure_column(conn, 'time_entries', 'hourly_rate', 'REAL')

        # Backstop for the one-open-entry-per-user rule
        conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_one_open_entry_per_user
            ON time_entries (user_id) WHERE end_time IS NULL
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS api_keys (
                key TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                device_id TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                last_used TEXT DEFAULT CURRENT_TIMESTAMP,
                active BOOLEAN DEFAULT TRUE
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

        conn.execute("""
            INSERT OR IGNORE INTO api_keys (key, user_id, device_id, active)
            VALUES (?, ?, 'default-device', 1)
        """, (DEFAULT_API_KEY, DEFAULT_USER_ID))

        default_settings = [
            ('host', '127.0.0.1'),
            ('port', str(DEFAULT_SERVER_PORT)),
            ('company_name', 'TradieTime'),
            ('timezone', 'UTC'),
        ]
        conn.executemany("INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)", default_settings)

        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error(f"Failed to initialize server database: {e}")
        raise
    finally:
        conn.close()

    initialize_server_clock(get_server_setting('timezone', 'UTC'))


def get_server_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get a server setting from the database"""
    conn = _connect()
    try:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row['value'] if row else default
    except sqlite3.Error:
        return default
    finally:
        conn.close()


def get_server_config() -> dict:
    """Get all server configuration from database"""
    return {
        'host': get_server_setting('host', '127.0.0.1'),
        'port': int(get_server_setting('port', str(DEFAULT_SERVER_PORT))),
        'company_name': get_server_setting('company_name', 'TradieTime'),
        'timezone': get_server_setting('timezone', 'UTC'),
    }


def server_now() -> datetime:
    return get_server_clock().now_utc()


def error_response(message: str, status: int):
    return jsonify(ApiResponse(False, error=message).to_dict()), status


def parse_rate(value) -> Optional[float]:
    """Hourly rate from a request body; raises ValueError unless a non-negative number"""
    if value is None or value == '':
        return None
    rate = float(value)
    if not rate >= 0:
        raise ValueError("hourly_rate must not be negative")
    return rate


def authenticate_request() -> Optional[str]:
    """Resolve the Bearer API key to a user id"""
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        logger.debug("Auth failed: No Bearer token in request")
        return None

    api_key = auth_header[7:]
    db = get_db()
    row = db.execute("SELECT user_id, active FROM api_keys WHERE key = ?", (api_key,)).fetchone()
    if not row:
        logger.warning(f"Auth failed: API key not found (key: {api_key[:8]}...)")
        return None
    if not row['active']:
        logger.warning(f"Auth failed: API key is not active (key: {api_key[:8]}...)")
        return None

    db.execute("UPDATE api_keys SET last_used = CURRENT_TIMESTAMP WHERE key = ?", (api_key,))
    db.commit()
    return row['user_id']


def require_auth(f):
    """Decorator to require authentication; sets g.user_id"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = authenticate_request()
        if not user_id:
            return error_response("Unauthorized", 401)
        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated_function


@app.errorhandler(400)
def bad_request(error):
    return error_response("Bad request", 400)


@app.errorhandler(404)
def not_found(error):
    return error_response("Not found", 404)


@app.errorhandler(405)
def method_not_allowed(error):
    return error_response("Method not allowed", 405)


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Internal error: {error}")
    return error_response("Internal server error", 500)


def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry.from_dict(dict(row))


def _find_entry(entry_id: str) -> Optional[sqlite3.Row]:
    return get_db().execute(
        f"SELECT {ENTRY_COLUMNS} FROM time_entries WHERE id = ? AND user_id = ?",
        (entry_id, g.user_id)
    ).fetchone()


def _find_open_entry(db: sqlite3.Connection, user_id: str) -> Optional[sqlite3.Row]:
    return db.execute(
        f"SELECT {ENTRY_COLUMNS} FROM time_entries WHERE user_id = ? AND end_time IS NULL LIMIT 1",
        (user_id,)
    ).fetchone()


def _close_entry(entry_id: str, start_time: datetime, end_time: datetime) -> Optional[TimeEntry]:
    """Write end_time and the derived duration exactly once"""
    db = get_db()
    now = format_datetime(server_now())
    cursor = db.execute("""
        UPDATE time_entries
        SET end_time = ?, duration_minutes = ?, updated_at = ?
        WHERE id = ? AND user_id = ? AND end_time IS NULL
    """, (format_datetime(end_time), ceil_minutes((end_time - start_time).total_seconds()),
          now, entry_id, g.user_id))
    db.commit()
    if cursor.rowcount == 0:
        return None
    return _row_to_entry(_find_entry(entry_id))


# Health check endpoint
@app.route('/health', methods=['GET'])
def health_check():
    return jsonify(ApiResponse(True, data={"status": "healthy",
                                           "timestamp": format_datetime(server_now())}).to_dict())


@app.route('/api/v1/info', methods=['GET'])
def get_server_info():
    """Get server information including company name and clock status"""
    clock = get_server_clock()
    return jsonify(ApiResponse(True, data={
        "company_name": get_server_setting('company_name', 'TradieTime'),
        "server_time": format_datetime(clock.now_utc()),
        "version": shared.__VERSION__,
        "api_version": shared.__API_VERSION__,
        "timezone": clock.timezone_name,
    }).to_dict())


@app.route('/api/v1/time', methods=['GET'])
def get_server_time():
    return jsonify(ApiResponse(True, data=get_server_clock().get_sync_status()).to_dict())


# Job endpoints
@app.route('/api/v1/jobs', methods=['GET'])
@require_auth
def list_jobs():
    rows = get_db().execute("SELECT id, title, status, hourly_rate FROM jobs ORDER BY title").fetchall()
    jobs = [Job.from_dict(dict(row)).to_dict() for row in rows]
    return jsonify(ApiResponse(True, data={"jobs": jobs}).to_dict())


@app.route('/api/v1/jobs', methods=['POST'])
@require_auth
def create_job():
    data = request.get_json(silent=True) or {}
    title = str(data.get('title') or '').strip()
    if not title:
        return error_response("Missing required field: title", 400)
    try:
        rate = parse_rate(data.get('hourly_rate'))
    except (TypeError, ValueError):
        return error_response("hourly_rate must be a non-negative number", 400)

    job = Job(id=str(uuid.uuid4()), title=title, status=data.get('status') or 'in_progress',
              hourly_rate=rate)
    db = get_db()
    db.execute("INSERT INTO jobs (id, title, status, hourly_rate, created_at) VALUES (?, ?, ?, ?, ?)",
               (job.id, job.title, job.status, job.hourly_rate, format_datetime(server_now())))
    db.commit()
    return jsonify(ApiResponse(True, data=job.to_dict()).to_dict()), 201


# Time entry endpoints
@app.route('/api/v1/time-entries/active', methods=['GET'])
@require_auth
def get_active_entry():
    """The caller's open entry, or null when no timer is running"""
    row = _find_open_entry(get_db(), g.user_id)
    entry = _row_to_entry(row).to_dict() if row else None
    return jsonify(ApiResponse(True, data={"entry": entry}).to_dict())


@app.route('/api/v1/time-entries', methods=['POST'])
@require_auth
def create_entry():
    """Start a timer (no end_time) or record a completed manual entry"""
    data = request.get_json(silent=True)
    if not data:
        return error_response("No data provided", 400)

    job_id = data.get('job_id')
    if not job_id:
        return error_response("Missing required field: job_id", 400)

    client_start = parse_datetime(data.get('start_time'))
    if client_start is None:
        return error_response("start_time must be a valid ISO timestamp", 400)

    end_time = None
    if data.get('end_time'):
        end_time = parse_datetime(data['end_time'])
        if end_time is None:
            return error_response("end_time must be a valid ISO timestamp", 400)
        if end_time < client_start:
            return error_response("end_time must not be before start_time", 400)
    try:
        hourly_rate = parse_rate(data.get('hourly_rate'))
    except (TypeError, ValueError):
        return error_response("hourly_rate must be a non-negative number", 400)

    db = get_db()
    job = db.execute("SELECT id, hourly_rate FROM jobs WHERE id = ?", (job_id,)).fetchone()
    if not job:
        return error_response(f"Job {job_id} does not exist", 400)
    if hourly_rate is None:
        hourly_rate = job['hourly_rate']

    now = server_now()
    entry_id = str(uuid.uuid4())

    if end_time is not None:
        start_time = client_start
        duration = ceil_minutes((end_time - start_time).total_seconds())
        origin = EntryOrigin.MANUAL.value
    else:
        # Running timers use the server's clock; the device's guess is kept for debugging
        start_time = now
        duration = None
        origin = EntryOrigin.TIMER.value

    try:
        db.execute("BEGIN EXCLUSIVE TRANSACTION")
        if end_time is None and _find_open_entry(db, g.user_id):
            db.rollback()
            return error_response("An active timer is already running", 409)

        db.execute(f"""
            INSERT INTO time_entries ({ENTRY_COLUMNS}, device_ts)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entry_id, g.user_id, job_id,
            format_datetime(start_time),
            format_datetime(end_time) if end_time else None,
            duration,
            data.get('description'),
            data.get('notes'),
            hourly_rate,
            origin,
            format_datetime(now), format_datetime(now),
            format_datetime(client_start),
        ))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        return error_response("An active timer is already running", 409)
    except sqlite3.Error as e:
        db.rollback()
        logger.error(f"Error creating time entry: {e}")
        return error_response("Internal server error", 500)

    entry = _row_to_entry(_find_entry(entry_id))
    logger.info(f"Created {origin} entry {entry_id} for user {g.user_id} on job {job_id}")
    return jsonify(ApiResponse(True, data=entry.to_dict()).to_dict()), 201


@app.route('/api/v1/time-entries/<entry_id>', methods=['PUT'])
@require_auth
def update_entry(entry_id):
    """Close an open entry, or edit its description/notes"""
    data = request.get_json(silent=True)
    if not data:
        return error_response("No data provided", 400)

    row = _find_entry(entry_id)
    if not row:
        return error_response("Time entry not found", 404)
    existing = _row_to_entry(row)

    if 'description' in data or 'notes' in data:
        db = get_db()
        db.execute("""
            UPDATE time_entries SET description = ?, notes = ?, updated_at = ?
            WHERE id = ? AND user_id = ?
        """, (data.get('description', existing.description), data.get('notes', existing.notes),
              format_datetime(server_now()), entry_id, g.user_id))
        db.commit()

    if 'end_time' not in data:
        return jsonify(ApiResponse(True, data=_row_to_entry(_find_entry(entry_id)).to_dict()).to_dict())

    if not existing.is_open:
        return error_response("Time entry already stopped", 404)

    end_time = parse_datetime(data.get('end_time'))
    if end_time is None:
        return error_response("end_time must be a valid ISO timestamp", 400)
    if end_time < existing.start_time:
        return error_response("end_time must not be before start_time", 400)

    requested = data.get('duration_minutes')
    entry = _close_entry(entry_id, existing.start_time, end_time)
    if entry is None:
        return error_response("Time entry already stopped", 404)
    if requested is not None and requested != entry.duration_minutes:
        logger.debug(f"Entry {entry_id}: client sent {requested} min, stored derived {entry.duration_minutes} min")

    logger.info(f"Stopped entry {entry_id} for user {g.user_id}: {entry.duration_minutes} min")
    return jsonify(ApiResponse(True, data=entry.to_dict()).to_dict())


@app.route('/api/v1/time-entries/<entry_id>/stop', methods=['POST'])
@require_auth
def stop_entry(entry_id):
    """Close an open entry at the server's current time"""
    row = _find_entry(entry_id)
    if not row:
        return error_response("Time entry not found", 404)
    existing = _row_to_entry(row)
    if not existing.is_open:
        return error_response("Time entry already stopped", 404)

    entry = _close_entry(entry_id, existing.start_time, max(server_now(), existing.start_time))
    if entry is None:
        return error_response("Time entry already stopped", 404)
    return jsonify(ApiResponse(True, data=entry.to_dict()).to_dict())


@app.route('/api/v1/time-entries/<entry_id>', methods=['DELETE'])
@require_auth
def delete_entry(entry_id):
    db = get_db()
    cursor = db.execute("DELETE FROM time_entries WHERE id = ? AND user_id = ?", (entry_id, g.user_id))
    db.commit()
    if cursor.rowcount == 0:
        return error_response("Time entry not found", 404)

    logger.info(f"Deleted entry {entry_id} for user {g.user_id}")
    return jsonify(ApiResponse(True, data={"id": entry_id, "deleted": True}).to_dict())


@app.route('/api/v1/time-entries', methods=['GET'])
@require_auth
def list_entries():
    """The caller's entries, newest first, filtered by UTC start date and job"""
    conditions = ["user_id = ?"]
    params = [g.user_id]

    for arg, op in (('start', '>='), ('end', '<=')):
        value = request.args.get(arg)
        if value:
            if parse_date(value) is None:
                return error_response(f"{arg} must be a YYYY-MM-DD date", 400)
            conditions.append(f"substr(start_time, 1, 10) {op} ?")
            params.append(value)

    job_id = request.args.get('job_id')
    if job_id:
        conditions.append("job_id = ?")
        params.append(job_id)

    rows = get_db().execute(
        f"SELECT {ENTRY_COLUMNS} FROM time_entries WHERE {' AND '.join(conditions)} ORDER BY start_time DESC",
        params
    ).fetchall()
    entries = [_row_to_entry(row).to_dict() for row in rows]
    return jsonify(ApiResponse(True, data={"entries": entries}).to_dict())


# Device onboarding endpoint
@app.route('/api/v1/devices/onboard', methods=['POST'])
def onboard_device():
    """Issue an API key binding a device to a user"""
    data = request.get_json(silent=True) or {}
    if not data.get('device_id') or not data.get('user_id'):
        return error_response("device_id and user_id required", 400)

    api_key = str(uuid.uuid4())
    db = get_db()
    db.execute("""
        INSERT INTO api_keys (key, user_id, device_id, created_at, last_used, active)
        VALUES (?, ?, ?, ?, ?, 1)
    """, (api_key, data['user_id'], data['device_id'],
          format_datetime(server_now()), format_datetime(server_now())))
    db.commit()

    logger.info(f"Onboarded device {data['device_id']} for user {data['user_id']}")
    return jsonify(ApiResponse(True, data={
        "api_key": api_key,
        "device_id": data['device_id'],
        "user_id": data['user_id'],
    }).to_dict()), 201


def run_server(host='0.0.0.0', port=DEFAULT_SERVER_PORT):
    """Run server with Waitress WSGI server; blocks until interrupted"""
    from waitress import serve

    clock = get_server_clock()
    clock.start_sync_service()

    logger.info(f"Starting TradieTime Server on {host}:{port}")
    try:
        serve(
            app,
            host=host,
            port=port,
            threads=6,
            channel_timeout=WAITRESS_CHANNEL_TIMEOUT,
            cleanup_interval=WAITRESS_CLEANUP_INTERVAL,
        )
    finally:
        clock.stop_sync_service()
        logger.info("Clock sync stopped")


if __name__ == '__main__':
    init_server_db()
    config = get_server_config()
    run_server(config['host'], config['port'])
