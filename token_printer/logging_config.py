"""
Logging configuration for the token printer bridge.

Messages carry the thread name, because printer work happens on the
``PrintWorker`` thread while Socket.IO callbacks and the status reporter run
on their own threads.

Log Format:
    2026-10-19 10:15:30 [INFO    ] [MainThread] token_printer.run - Starting
    2026-10-19 10:15:31 [INFO    ] [PrintWorker] token_printer.printer.manager - Printer connected

Usage:
    # At process startup
    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    # In modules
    logger = get_logger(__name__)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

APP_LOGGER = "token_printer"


class ThreadContextFilter(logging.Filter):
    """Adds ``thread_name`` to every record for the format string."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.thread_name = threading.current_thread().name
        return True


def setup_logging(
    app_name: str = APP_LOGGER,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = False,
) -> logging.Logger:
    """
    Configure the application logger.

    Sets up a console handler and, optionally, a rotating application log
    plus a separate ERROR/CRITICAL log in ``log_dir``.

    Args:
        app_name: Name of the application logger
        log_level: Minimum log level
        log_dir: Directory for log files (default: ./logs)
        enable_file_logging: Whether to write log files

    Returns:
        The configured application logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False

    # Allow re-configuration
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    thread_filter = ThreadContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(thread_filter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        if log_dir is None:
            log_dir = Path.cwd() / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        file_handler = RotatingFileHandler(
            filename=app_log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB per file
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(thread_filter)
        logger.addHandler(file_handler)

        error_handler = RotatingFileHandler(
            filename=log_dir / f"{app_name}_error.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        error_handler.addFilter(thread_filter)
        logger.addHandler(error_handler)

        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger under the application namespace.

    ``get_logger("printer.manager")`` and
    ``get_logger("token_printer.printer.manager")`` return the same logger.
    """
    if not name.startswith(APP_LOGGER):
        name = f"{APP_LOGGER}.{name}"
    return logging.getLogger(name)
