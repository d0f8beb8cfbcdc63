"""Server package for TradieTime application.

Reference time-entry service. Runs in console mode on the Waitress WSGI server.
"""
from .server import app as flask_app
from .server import DEFAULT_SERVER_PORT, init_server_db, run_server

__all__ = ["run_server", "flask_app", "init_server_db", "run_console_server"]


def run_console_server(host=None, port=None):
    """Initialize the database and serve until interrupted"""
    from .server import get_server_config

    init_server_db()
    config = get_server_config()
    host = host or config['host']
    port = port or config['port'] or DEFAULT_SERVER_PORT

    print("TradieTime Server - Console Mode")
    print(f"Starting server on {host}:{port}")
    print("Using Waitress WSGI server")
    run_server(host=host, port=port)
