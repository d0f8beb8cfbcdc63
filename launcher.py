#!/usr/bin/env python3
"""
TradieTime Application Launcher
Provides simple entry points for client and server applications.
"""

import sys
from pathlib import Path

# Add the project root to Python path for clean imports
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


def main():
    """Main launcher with command-line arguments"""

    if len(sys.argv) < 2:
        print("TradieTime Application Launcher")
        print()
        print("Usage:")
        print("  python launcher.py client              # Run client GUI application")
        print("  python launcher.py server [port]       # Run server in console mode")
        print("  add --debug to any command for verbose logging")
        print()
        print("Note: The server uses the Waitress WSGI server")
        sys.exit(1)

    if '--debug' in sys.argv:
        from shared.logging_config import enable_debug_logging
        sys.argv.remove('--debug')
        enable_debug_logging()

    command = sys.argv[1].lower()

    if command == 'client':
        from client.gui_app import main as run_client
        run_client()

    elif command in ('server', 'console-server'):
        from server import run_console_server
        port = int(sys.argv[2]) if len(sys.argv) > 2 else None
        run_console_server(port=port)

    else:
        print(f"Unknown command: {command}")
        print("Use 'client' or 'server'")
        sys.exit(1)


if __name__ == '__main__':
    main()
