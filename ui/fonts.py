"""
UI Font definitions for TradieTime application.
Provides consistent font styling across all UI components.
"""

from PyQt6.QtGui import QFont

fonts = {
    "default": QFont("Verdana", 14),
    "large": QFont("Verdana", 20),
    "small": QFont("Verdana", 9),

    "monospace_small": QFont("Courier New", 9),

    "default_bold": QFont("Verdana", 14, QFont.Weight.Bold),
    "small_bold": QFont("Verdana", 9, QFont.Weight.Bold),

    # Running timer and the hours summary
    "timer": QFont("Courier New", 40, QFont.Weight.Bold),
    "stat": QFont("Verdana", 12, QFont.Weight.Bold),
}
