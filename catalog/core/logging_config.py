"""
Logging configuration for the course catalog.
Implements rotating file logs with 10 MB max size.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Log directory
LOG_DIR = Path(__file__).parent.parent.parent / "logs"

# Log file settings
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_file_handler(filename: str, level: int = logging.DEBUG) -> RotatingFileHandler:
    """Create a rotating file handler inside LOG_DIR."""
    LOG_DIR.mkdir(exist_ok=True)
    handler = RotatingFileHandler(
        LOG_DIR / filename,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def get_console_handler(level: int = logging.INFO) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    app_name: str = "catalog",
    log_level: str = "",
    environment: str = "development",
    enable_console: bool = True,
    enable_file: bool = True,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        app_name: Used for log file naming
        log_level: Minimum console level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   If empty, DEBUG in development and WARNING in production.
        environment: Application environment (development, production)
        enable_console: Whether to log to stdout
        enable_file: Whether to write rotating log files

    Returns:
        Configured root logger
    """
    if not log_level:
        log_level = "WARNING" if environment == "production" else "DEBUG"

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers filter
    root_logger.handlers.clear()

    if enable_console:
        root_logger.addHandler(get_console_handler(numeric_level))

    if enable_file:
        root_logger.addHandler(get_file_handler(f"{app_name}.log", logging.DEBUG))
        root_logger.addHandler(get_file_handler(f"{app_name}_error.log", logging.ERROR))

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestLogger:
    """Helper class for logging HTTP requests."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: str = None,
        query: str = None,
    ):
        extra_info = []
        if client_ip:
            extra_info.append(f"ip={client_ip}")
        if query:
            extra_info.append(f"query={query}")

        extra_str = " | ".join(extra_info)
        line = f"{method} {path} -> {status_code} ({duration_ms:.2f}ms) {extra_str}".rstrip()

        if status_code >= 500:
            self.logger.error(line)
        elif status_code >= 400:
            self.logger.warning(line)
        else:
            self.logger.info(line)
