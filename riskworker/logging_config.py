"""
Risk Worker Logging
===================
One console stream coloured by level, plus an optional size-rotated file.

Five tasks log concurrently from their own threads, so both formats carry
the thread name (run-<task> for task work, tick-<task> for skipped ticks).

Usage:
    from riskworker.logging_config import setup_logging

    setup_logging(log_file='logs/riskworker.log', log_level='DEBUG')
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

import colorama

colorama.init()

CONSOLE_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Per-statement chatter from the SQL and HTTP layers drowns the task summaries
QUIET_LOGGERS = ('sqlalchemy.engine', 'uvicorn.access')


class LevelColorFormatter(logging.Formatter):
    """Console formatter that wraps the level name in an ANSI colour."""

    LEVEL_COLORS = {
        logging.DEBUG: colorama.Fore.CYAN,
        logging.INFO: colorama.Fore.GREEN,
        logging.WARNING: colorama.Fore.YELLOW,
        logging.ERROR: colorama.Fore.RED,
        logging.CRITICAL: colorama.Fore.RED + colorama.Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # The file handler formats the same record after us
        tinted = logging.makeLogRecord(record.__dict__)
        tinted.levelname = f"{color}{record.levelname}{colorama.Style.RESET_ALL}"
        return super().format(tinted)


def setup_logging(
    log_file: Optional[str] = None,
    log_level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the root logger for a worker or script process.

    Replaces any handlers already attached, so calling it twice does not
    duplicate output. Returns the root logger.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(LevelColorFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
        )
        rotating.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(rotating)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return root
