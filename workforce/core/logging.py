"""
Logging helpers.
"""

import logging
import os

_configured = False

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """Install the root handler once and apply the requested level."""
    global _configured

    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    if not _configured:
        logging.basicConfig(format=LOG_FORMAT)
        _configured = True

    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
