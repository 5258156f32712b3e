"""Logging for the gigmarket API."""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Send API logs to stdout. Safe to call more than once."""
    global _configured
    log_level = getattr(logging, level.upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root = logging.getLogger("gigmarket_api")
    root.setLevel(log_level)
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True


def get_logger(name: str) -> logging.Logger:
    """Logger under the gigmarket_api namespace."""
    if not name.startswith("gigmarket_api"):
        name = f"gigmarket_api.{name}"
    return logging.getLogger(name)
