"""Simple logging helpers for bedrock-assistant."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

__all__ = ["setup_logger", "get_logger"]

DEFAULT_LOG_FILE = Path("~/.bedrock-assistant/logs/assistant.log").expanduser()
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3
QUIET_LOGGERS = ("litellm", "LiteLLM", "httpx", "botocore")


def setup_logger(
    name: str,
    verbose: bool = False,
    log_file: bool = True,
) -> logging.Logger:
    """Configure and return a logger for this project.

    Args:
        name: Logger name, usually the package name so every module logger
            created with ``get_logger(__name__)`` inherits the handlers.
        verbose: ``True`` enables INFO logs; ``False`` keeps output at WARNING+.
        log_file: ``True`` also writes to ``~/.bedrock-assistant/logs/assistant.log``;
            ``False`` keeps logging on the console only.
    """
    logger = logging.getLogger(name)
    level = logging.INFO if verbose else logging.WARNING

    # Reconfigure safely if setup_logger is called more than once.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        log_path = DEFAULT_LOG_FILE
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    # Keep third-party libraries quiet unless they emit warnings or errors.
    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name without changing its configuration."""
    return logging.getLogger(name)

