"""UI package for TradieTime client application.

Contains fonts and dialog components used by the timer window.
Main GUI application logic is in client.gui_app.TimeTrackingWindow.
"""

from . import dialogs
from .dialogs import set_dialog_icon
from .fonts import fonts

__all__ = [
    "dialogs",
    "set_dialog_icon",
    "fonts"
]
