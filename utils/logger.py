"""
Logging helpers - one place to configure and fetch loggers
"""
import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def setup_logging(level=None):
    """Configure the root logger once; later calls only adjust the level."""
    global _configured
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root = logging.getLogger()
    if not _configured:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True
    root.setLevel(getattr(logging, level, logging.INFO))


def get_logger(name):
    return logging.getLogger(name)
