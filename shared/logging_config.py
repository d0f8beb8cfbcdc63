"""
Logging for TradieTime.

Each component (CLIENT, TIMER, SERVER) gets one ``tradietime.<component>``
logger writing to the console and to a per-run file under the data dir.
"""

import logging
import sys
from datetime import datetime

from termcolor import colored

from shared.utils import get_data_path

LOGGER_PREFIX = "tradietime"
LINE_FORMAT = '[%(asctime)s] [%(component)s] [%(levelname)s] %(message)s'
TIME_FORMAT = '%Y-%m-%d %H:%M:%S'

# Level applied to loggers created from now on; --debug raises it
_default_level = "INFO"


def _logger_name(component: str) -> str:
    return f"{LOGGER_PREFIX}.{component.lower()}"


def _level_value(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def _is_terminal(stream) -> bool:
    # Windowed builds have no stdout at all
    try:
        return bool(stream and stream.isatty())
    except (AttributeError, OSError):
        return False


class TradieTimeFormatter(logging.Formatter):
    """Tags each line with its component; colours by level on a terminal"""

    LEVEL_COLORS = {
        'DEBUG': 'cyan',
        'INFO': 'green',
        'WARNING': 'yellow',
        'ERROR': 'red',
        'CRITICAL': 'magenta'
    }

    def __init__(self, component: str, use_colors: bool = True):
        super().__init__(fmt=LINE_FORMAT, datefmt=TIME_FORMAT)
        self.component = component
        self.use_colors = use_colors and _is_terminal(sys.stdout)

    def format(self, record):
        record.component = self.component
        line = super().format(record)
        if not self.use_colors:
            return line
        return colored(line, self.LEVEL_COLORS.get(record.levelname, 'white'))


def _run_log_path(component: str):
    stamp = datetime.now().strftime('%Y-%m-%d %H-%M-%S')
    log_dir = get_data_path('logs')
    log_dir.mkdir(exist_ok=True)
    return log_dir / f"{LOGGER_PREFIX}_{component.lower()}_{stamp}.log"


def setup_logging(component: str, level: str = "INFO", log_to_file: bool = True) -> logging.Logger:
    """Attach console and file handlers to a component's logger.

    A logger that already has handlers is returned unchanged.
    """
    logger = logging.getLogger(_logger_name(component))
    if logger.handlers:
        return logger

    logger.setLevel(_level_value(level))

    console = logging.StreamHandler(sys.stdout or sys.stderr)
    console.setFormatter(TradieTimeFormatter(component))
    logger.addHandler(console)

    if not log_to_file:
        return logger

    try:
        file_handler = logging.FileHandler(_run_log_path(component), encoding='utf-8')
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
        return logger
    file_handler.setFormatter(TradieTimeFormatter(component, use_colors=False))
    logger.addHandler(file_handler)
    return logger


def get_logger(component: str) -> logging.Logger:
    existing = logging.getLogger(_logger_name(component))
    if existing.handlers:
        return existing
    return setup_logging(component, _default_level)


def get_client_logger() -> logging.Logger:
    return get_logger("CLIENT")


def get_server_logger() -> logging.Logger:
    return get_logger("SERVER")


def get_timer_logger() -> logging.Logger:
    """Reconciler, state machine and reporter"""
    return get_logger("TIMER")


def set_log_level(level: str):
    """Change the level of every existing TradieTime logger and of later ones"""
    global _default_level
    _default_level = level.upper()
    value = _level_value(level)

    for name in list(logging.root.manager.loggerDict):
        if not name.startswith(f"{LOGGER_PREFIX}."):
            continue
        logger = logging.getLogger(name)
        logger.setLevel(value)
        for handler in logger.handlers:
            handler.setLevel(value)


def enable_debug_logging():
    set_log_level("DEBUG")
