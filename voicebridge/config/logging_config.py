"""
Logging setup for voicebridge.

Every module logs through the one named logger (LOGGER_NAME). configure_logging
gives it a console handler and, when the log directory is writable, a rotating
file. Third-party loggers that chatter on every progress callback or websocket
frame are held at WARNING unless voicebridge itself runs at DEBUG.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from voicebridge.config.constants import LOGGER_NAME

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_FILE = LOG_DIR / "voicebridge.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# urllib3 logs each callback POST, websockets each frame
NOISY_LOGGERS = ("urllib3", "websockets")


def _file_handler(formatter: logging.Formatter) -> Optional[RotatingFileHandler]:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        sys.stderr.write(f"Could not create log directory {LOG_DIR}: {e}\n")
        return None
    handler = RotatingFileHandler(LOG_FILE, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT)
    handler.setFormatter(formatter)
    return handler


def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """
    Configure the voicebridge logger. Safe to call again, e.g. from run.py after
    the environment was loaded; handlers are replaced, not added.

    Args:
        level: Level name, defaults to LOG_LEVEL from the environment

    Returns:
        logging.Logger: The configured logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = _file_handler(formatter)
    if file_handler is not None:
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(numeric_level if numeric_level <= logging.DEBUG else logging.WARNING)

    logger.propagate = False

    logger.info(f"Logging configured at {logging.getLevelName(numeric_level)}")
    return logger
