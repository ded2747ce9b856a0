"""
Centralized logging configuration for the newsroom pipeline.

- Console handler (WARNING by default, INFO with --verbose)
- Rotating main/debug/error files under LOG_DIR
- Run banners so a scheduler pass is easy to find in the files
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from datetime import datetime
from typing import Optional

from .config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
LOG_FORMAT_SIMPLE = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 10 * 1024 * 1024  # 10 MB per file
BACKUP_COUNT = 5

_initialized = False
_log_dir: Optional[Path] = None


def setup_logging(
    level: int = logging.DEBUG,
    console_level: int = logging.WARNING,
    enable_console: bool = True,
    enable_file: bool = True,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Configure application-wide logging with console and file handlers.

    Args:
        level: Root logger level
        console_level: Console handler level
        enable_console: Whether to log to stdout
        enable_file: Whether to log to rotating files
        log_dir: Directory for log files (defaults to LOG_DIR setting)

    Returns:
        The root logger instance
    """
    global _initialized, _log_dir

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    detailed_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    simple_formatter = logging.Formatter(LOG_FORMAT_SIMPLE, datefmt=DATE_FORMAT)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(logging.Formatter("%(levelname)-8s | %(name)s | %(message)s"))
        root_logger.addHandler(console_handler)

    if enable_file:
        _log_dir = Path(log_dir or get_settings().log_dir)
        _log_dir.mkdir(parents=True, exist_ok=True)

        handlers = [
            ("newsroom.log", logging.INFO, simple_formatter),
            ("newsroom_debug.log", logging.DEBUG, detailed_formatter),
            ("newsroom_errors.log", logging.ERROR, detailed_formatter),
        ]
        for filename, handler_level, formatter in handlers:
            handler = RotatingFileHandler(
                _log_dir / filename,
                maxBytes=MAX_BYTES,
                backupCount=BACKUP_COUNT,
                encoding="utf-8",
            )
            handler.setLevel(handler_level)
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)

    # Third-party clients are chatty at DEBUG
    for noisy in ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _initialized = True
    log_banner(root_logger, "START")
    return root_logger


def log_banner(logger: logging.Logger, event: str = "START"):
    """Log a start/end banner for easy identification in logs."""
    banner = ("=" if event == "START" else "-") * 70
    logger.info(banner)
    logger.info(f"NEWSROOM PIPELINE - Session {event}")
    logger.info(f"Timestamp: {datetime.now().isoformat()}")
    if _log_dir:
        logger.info(f"Log directory: {_log_dir}")
    logger.info(banner)


def shutdown_logging():
    """Flush handlers with an end banner."""
    if _initialized:
        log_banner(logging.getLogger(), "END")
        logging.shutdown()


def init_logging(console_level: int = logging.WARNING, verbose: bool = False):
    """Initialize logging once; later calls are ignored."""
    if _initialized:
        return
    if verbose:
        console_level = logging.INFO
    setup_logging(console_level=console_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger, initializing logging on first use."""
    if not _initialized:
        init_logging()
    return logging.getLogger(name)


def set_console_level(level: int):
    """Change console logging level at runtime."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stdout:
            handler.setLevel(level)
            root_logger.info(f"Console log level changed to {logging.getLevelName(level)}")
            break
