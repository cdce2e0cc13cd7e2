"""
Application logging

One rotating file under LOG_DIR plus the console. Call ``setup_logging``
once at startup; modules use ``logging.getLogger(__name__)``.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from helporbit.core.config import settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 10

# Third-party loggers that flood DEBUG output
QUIET_LOGGERS = ("urllib3", "boto3", "botocore", "aiosqlite", "passlib")


def setup_logging(log_dir: Optional[str] = None, environment: Optional[str] = None) -> None:
    log_dir = log_dir or settings.LOG_DIR
    environment = environment or settings.ENVIRONMENT
    os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "helporbit.log"),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    logging.basicConfig(
        level=logging.DEBUG if environment == "development" else logging.INFO,
        format=LOG_FORMAT,
        handlers=[file_handler, logging.StreamHandler()],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
