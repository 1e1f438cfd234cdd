"""
Reservation Boss - Logging
===========================

All modules log through children of the `reservation_boss` logger:
- console, DEBUG in development and INFO in production (LOG_LEVEL overrides)
- `reservation_boss.log`: rotating INFO+ history of reservations and admin actions
- `reservation_boss_errors.log`: rotating ERROR+ only, failed transactions and
  undelivered emails

Usage:
    from logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Reservation created")
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

BASE_DIR = Path(os.path.abspath(os.path.dirname(__file__)))
LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))

ROOT_LOGGER_NAME = "reservation_boss"
APP_LOG_FILE = "reservation_boss.log"
ERROR_LOG_FILE = "reservation_boss_errors.log"

MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Library loggers that flood DEBUG output
QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "multipart")


def _console_level(environment: str) -> int:
    override = os.getenv("LOG_LEVEL")
    if override:
        level = logging.getLevelName(override.upper())
        if isinstance(level, int):
            return level
    return logging.INFO if environment == "production" else logging.DEBUG


def _rotating_handler(log_dir: Path, filename: str, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        log_dir / filename,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(environment: str = "development", log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Attaches the console and file handlers to the application logger.

    Idempotent: a logger that already has handlers is returned unchanged.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if root_logger.handlers:
        return root_logger

    log_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(_console_level(environment))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler(log_dir, APP_LOG_FILE, logging.INFO, formatter))
    root_logger.addHandler(_rotating_handler(log_dir, ERROR_LOG_FILE, logging.ERROR, formatter))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Child of the application logger, e.g. `reservation_boss.services`."""
    if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
        setup_logging(os.getenv("ENVIRONMENT", "development"))
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# Initialize on import
_root_logger = setup_logging(os.getenv("ENVIRONMENT", "development"))
