"""
Logging setup for the call assistant service.

Everything the service logs goes through the ``call_assistant`` logger,
written to stdout and to a rotating file under ``LOG_DIR``. Webhook bodies
and audio are never logged; call identifiers and chunk sequence numbers are.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from call_assistant.config.constants import LOGGER_NAME

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_FILE_NAME = "call_assistant.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# httpx logs one INFO line per request, including the provider URL
QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = LOG_LEVEL, log_dir: Path = LOG_DIR) -> logging.Logger:
    """
    Set up the service logger. Calling it again replaces the handlers.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_dir: Directory for the rotating log file

    Returns:
        logging.Logger: The ``call_assistant`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        # Read-only deployments still get console logs
        logger.warning(f"Could not write logs to {log_dir}: {e}")

    logger.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured at {logging.getLevelName(logger.level)}")
    return logger
