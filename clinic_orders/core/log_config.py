"""
Logging setup - console plus rotating file, quiet third-party loggers
"""
import logging
import os
from logging.handlers import RotatingFileHandler

from .config import settings


def setup_logging() -> None:
    os.makedirs(settings.LOGS_PATH, exist_ok=True)

    # 50MB max, keep 7 files
    file_handler = RotatingFileHandler(
        os.path.join(settings.LOGS_PATH, "clinic_orders.log"),
        maxBytes=50 * 1024 * 1024,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    ))

    # Disable noisy loggers BEFORE basicConfig
    for noisy in ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool", "httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        handlers=[file_handler, console_handler],
    )
