#!/usr/bin/env python3
"""Entry point for the Token Printer bridge."""
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from token_printer import create_service
from token_printer.config import config
from token_printer.exceptions import ConfigurationError
from token_printer.logging_config import setup_logging

EXIT_CONFIG_ERROR = 2


def main() -> int:
    env = os.environ.get("TOKEN_PRINTER_ENV", "default")
    cfg = config.get(env, config["default"])

    logger = setup_logging(
        log_level=getattr(logging, str(cfg.LOG_LEVEL).upper(), logging.INFO),
        log_dir=Path(cfg.LOG_DIR) if cfg.LOG_DIR else None,
        enable_file_logging=cfg.LOG_TO_FILE,
    )
    logger.info(f"Starting Token Printer ({env}), event source {cfg.BACKEND_URL}")

    try:
        service = create_service(cfg)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    stopping = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        stopping.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    service.start()
    while not stopping.wait(1):
        pass
    service.stop()
    logger.info("Token Printer stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
