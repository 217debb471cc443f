"""Logging configuration and utilities.

structlog renders every event once; the rendered line is then handed to
stdlib handlers, a colorlog console handler on stderr and an optional
rotating file. Handlers installed here are tagged so that calling
``setup_logging`` again replaces them instead of stacking duplicates.
"""

import functools
import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import Optional

import structlog
import colorlog
from structlog.typing import Processor

from ..config.settings import LoggingSettings, get_settings

# Libraries that are chatty at INFO and only interesting when debugging
NOISY_LOGGERS = ("aiohttp.access", "google.auth", "urllib3", "sqlalchemy.engine")

_HANDLER_TAG = "_foldersync_handler"


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    logging_settings: Optional[LoggingSettings] = None
) -> None:
    """Configure structlog and the stdlib handlers it writes through.

    Explicit arguments win over ``logging_settings``, which defaults to
    the application settings.
    """
    config = logging_settings or get_settings().logging

    level_name = (log_level or config.level).upper()
    level = getattr(logging, level_name)
    format_type = log_format or config.format
    file_path = log_file if log_file is not None else config.file_path

    root = logging.getLogger()
    root.setLevel(level)
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(handler)
        handler.close()

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        # colorlog colors the whole line by level
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if file_path:
        root.addHandler(create_file_handler(file_path, level, config.max_file_bytes, config.backup_count))

    root.addHandler(create_console_handler(level, colored=format_type != "json"))


def create_file_handler(file_path: str, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    """Rotating file handler writing one rendered event per line."""
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    setattr(handler, _HANDLER_TAG, True)
    return handler


def create_console_handler(level: int, colored: bool = True) -> logging.Handler:
    """stderr handler; stdout is kept for command output."""
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if colored:
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            reset=True,
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )
    else:
        formatter = logging.Formatter("%(message)s")
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_TAG, True)
    return handler


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_async_execution_time(func):
    """Log how long a Drive call took, and re-raise when it fails."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        started = time.perf_counter()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.warning(
                "Operation failed",
                operation=func.__qualname__,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
                error_type=type(e).__name__,
                error=str(e)
            )
            raise

        logger.debug(
            "Operation finished",
            operation=func.__qualname__,
            elapsed_ms=int((time.perf_counter() - started) * 1000)
        )
        return result

    return wrapper
