"""Shared package for TradieTime.

Models, utilities and logging used by both the client and the server.
"""

__VERSION__ = "1.0.0"
__API_VERSION__ = "1"
