"""
Logging Setup - Single place for logger creation

Single Responsibility: Create and configure loggers
"""

import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def create_logger(
    name: Optional[str],
    log_file: Path,
    level: int = logging.INFO,
    console: bool = True,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 5,
    error_log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Create a configured logger with file and console handlers.

    Args:
        name: Logger name (None for the root logger)
        log_file: Path to log file
        level: Logging level
        console: Whether to add console handler
        max_bytes: Max file size before rotation
        backup_count: Number of backup files to keep
        error_log_file: Optional second file that only receives ERROR and above

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # Ensure log directory exists
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # File handler with rotation
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if error_log_file is not None:
        error_log_file.parent.mkdir(parents=True, exist_ok=True)
        error_handler = RotatingFileHandler(
            error_log_file,
            maxBytes=max_bytes,
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

    # Console handler
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('%(levelname)s | %(name)s | %(message)s'))
        logger.addHandler(console_handler)

    return logger


def configure_logging(config) -> logging.Logger:
    """Configure the root logger for the service (app.log + error.log + console)."""
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = create_logger(
        None,
        config.logs_dir / "app.log",
        level=level,
        error_log_file=config.logs_dir / "error.log",
    )

    # uvicorn access logs are noisy with the SSE keep-alives
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return root_logger
