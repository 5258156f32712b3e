"""
Local logging for gigmarket.

Two streams:
- local-{date}.log: regular module logging under the "gigmarket" logger.
- market-events-{date}.log: one line per job transition, ledger write or
  escrow hold change, for audit trails outside the database. Written by
  the "gigmarket.events" logger.

Files are only opened by setup_gigmarket_logging. The log_* helpers go
through the logging module and never touch the filesystem themselves, so
an unwritable data directory cannot fail a marketplace write.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from gigmarket.utils import get_gigmarket_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
EVENT_FORMAT = "%(asctime)s | %(message)s"

EVENTS_LOGGER_NAME = "gigmarket.events"

events_logger = logging.getLogger(EVENTS_LOGGER_NAME)
events_logger.propagate = False
events_logger.setLevel(logging.INFO)


def _log_dir() -> Path:
    log_dir = get_gigmarket_home() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _has_file_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h, logging.FileHandler) for h in logger.handlers)


def setup_gigmarket_logging(level: str = "INFO") -> logging.Logger:
    """Configure the "gigmarket" logger and the market events log.

    DEBUG also logs to the console. Safe to call repeatedly. If the log
    directory cannot be written, a warning is emitted and logging carries
    on without files.
    """
    logger = logging.getLogger("gigmarket")

    log_level = getattr(logging, level.upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    logger.setLevel(log_level)

    if _has_file_handler(logger):
        return logger

    try:
        log_dir = _log_dir()
        file_handler = logging.FileHandler(log_dir / f"local-{_today()}.log")
        if not _has_file_handler(events_logger):
            event_handler = logging.FileHandler(log_dir / f"market-events-{_today()}.log")
            event_handler.setFormatter(logging.Formatter(EVENT_FORMAT))
            events_logger.addHandler(event_handler)
    except OSError as e:
        logger.warning(f"Log files disabled, cannot write to {get_gigmarket_home()}: {e}")
    else:
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if log_level == logging.DEBUG:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    return logger


def log_market_event(event_type: str, details: str, actor_id: Optional[str] = None) -> None:
    """Emit one line on the market events log."""
    events_logger.info(f"{event_type} | actor={actor_id or 'system'} | {details}")


def log_transition(
    job_id: str, from_status: str, to_status: str, actor_id: Optional[str] = None
) -> None:
    log_market_event(
        "transition", f"job={job_id[:8]}... {from_status}->{to_status}", actor_id=actor_id
    )


def log_ledger(user_id: str, kind: str, amount, status: str, job_id: Optional[str] = None) -> None:
    details = f"user={user_id} kind={kind} amount={amount} status={status}"
    if job_id:
        details += f" job={job_id[:8]}..."
    log_market_event("ledger", details)


def log_hold(job_id: str, state: str, amount, actor_id: Optional[str] = None) -> None:
    log_market_event("hold", f"job={job_id[:8]}... state={state} amount={amount}", actor_id=actor_id)


def log_review(job_id: str, reviewee_id: str, rating: int, actor_id: Optional[str] = None) -> None:
    log_market_event(
        "review", f"job={job_id[:8]}... reviewee={reviewee_id} rating={rating}", actor_id=actor_id
    )
