"""
Logger Module
-------------
Timestamped console + rotating file logging for OCR errors,
duplicate uploads, status transitions and match outcomes.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from upi_reconciler.config import settings

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'
ROOT_LOGGER = 'upi_reconciler'

_configured = False


def setup_logging(log_dir=None, level=None):
    """
    Attach console and rotating-file handlers to the package logger.

    Safe to call more than once; handlers are only added the first time.

    Args:
        log_dir (str): Directory for upi_reconciler.log (default: settings.log_dir).
        level (str): Log level name (default: settings.log_level).
    """
    global _configured
    if _configured:
        return

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level or settings.log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    log_dir = log_dir or settings.log_dir
    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'upi_reconciler.log'),
            maxBytes=1_000_000,
            backupCount=3,
            encoding='utf-8',
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning("File logging disabled (%s): %s", log_dir, e)

    _configured = True


def get_logger(name):
    """
    Return a logger under the package namespace.

    Handlers are attached by setup_logging(), which the application entry
    point calls; importing a module never touches the filesystem.
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
