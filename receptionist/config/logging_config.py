"""
Logging setup for the relay.

Everything the relay logs goes through the ``receptionist`` logger, written to
stdout and to a size-rotated file. Call traffic is chatty, so the third-party
client libraries are held at WARNING unless the relay itself runs at DEBUG.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from receptionist.config.constants import LOGGER_NAME

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "receptionist.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# Libraries that log every frame or HTTP request at INFO/DEBUG
NOISY_LOGGERS = ("websockets", "twilio.http_client", "urllib3")


def configure_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the relay logger. Safe to call more than once; earlier handlers
    are closed and replaced.

    Args:
        level: Level name such as "INFO" or "debug"; unknown names mean INFO
        log_dir: Directory for the rotating log file, defaults to ``LOG_DIR``
            from the environment or ``logs``

    Returns:
        logging.Logger: The configured relay logger
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    try:
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            directory / LOG_FILE_NAME,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"File logging disabled, cannot write to {directory}: {e}")

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.propagate = False
    logger.debug(f"Logging configured at {logging.getLevelName(numeric_level)}")
    return logger
