"""
Logging utilities for PSKAlert
"""

import logging
import logging.handlers
import os
from datetime import datetime
from functools import wraps
from typing import Optional

from psk_alert.config.settings import LoggingSettings

ROOT_LOGGER_NAME = "psk_alert"


def setup_logging(settings: Optional[LoggingSettings] = None, log_dir: str = "logs",
                  console_handler: Optional[logging.Handler] = None,
                  name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Configure the package logger with rotating file and console handlers.

    Calling it again replaces the handlers installed by the previous call.
    """
    settings = settings or LoggingSettings()
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
    )

    if settings.file_enabled:
        os.makedirs(log_dir, exist_ok=True)

        # File handler for all logs
        log_file = os.path.join(log_dir, f"{name}.log")
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=settings.max_file_size_mb * 1024 * 1024,
            backupCount=settings.backup_count
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        logger.addHandler(file_handler)

        # Error file handler
        error_log_file = os.path.join(log_dir, f"{name}_errors.log")
        error_file_handler = logging.handlers.RotatingFileHandler(
            error_log_file, maxBytes=5 * 1024 * 1024, backupCount=3
        )
        error_file_handler.setLevel(logging.ERROR)
        error_file_handler.setFormatter(detailed_formatter)
        logger.addHandler(error_file_handler)

    if settings.console_enabled:
        if console_handler is None:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(settings.format))
        console_handler.setLevel(getattr(logging, settings.level))
        logger.addHandler(console_handler)

    return logger


def log_performance(func):
    """Decorator to log function performance"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.performance")
        start_time = datetime.now()
        try:
            result = func(*args, **kwargs)
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"{func.__name__} completed in {duration:.3f} seconds")
            return result
        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            logger.error(f"{func.__name__} failed after {duration:.3f} seconds: {e}")
            raise
    return wrapper
