import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from utils import config

_console: Optional[Console] = None


class CenteredFormatter(logging.Formatter):
    longest_name_length = 14  # Initial default width

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )

        dynamic_width = CenteredFormatter.longest_name_length + 2
        record.name = f"{record.name.center(dynamic_width - 2)}"
        return super().format(record)


def _shared_console() -> Console:
    """One console for every handler; a log file when ORDERMGR_LOG_FILE is set."""
    global _console
    if _console is None:
        if config.LOG_FILE:
            _console = Console(
                file=open(config.LOG_FILE, "a", encoding="utf-8"),
                width=120,
                force_terminal=False,
            )
        else:
            _console = Console(stderr=True)
    return _console


def _log_level() -> int:
    if config.DEBUG:
        return logging.DEBUG
    level = logging.getLevelName(config.LOG_LEVEL)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    The TUI owns the terminal, so point ORDERMGR_LOG_FILE somewhere when running it.
    """
    if name is None:
        name = "Default"
    logger = logging.getLogger(name)
    log_level = _log_level()
    logger.setLevel(log_level)

    if not logger.handlers:
        # Create formatter that includes logger name
        format_pattern = "[%(name)s]  %(message)s"
        formatter = CenteredFormatter(format_pattern)

        handler = RichHandler(
            console=_shared_console(),
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        logger.addHandler(handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger
