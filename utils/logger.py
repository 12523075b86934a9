import logging
import os
from typing import Optional

LOGGER_NAME = "spotify_agent"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure root logging for the CLI.

    Console output is always on; log_file adds a file handler (directory is
    created if needed).
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return _logger


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
