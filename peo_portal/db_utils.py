"""
peo_portal/db_utils.py

Transaction boundaries for the procurement engine.

Every public service operation runs as ONE unit of work:
    with atomic():
        primary write -> side effects -> aggregate recompute -> audit
Commit happens once at the end; any exception rolls everything back, so a failure
between statements cannot leave POW / Bidding / Budget / Contractor out of sync.

Store failures (connection refused, server gone) surface as Unavailable.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator

from flask import current_app
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session

from .errors import SequenceConflict, Unavailable
from .extensions import db

logger = logging.getLogger(__name__)

_STORE_ERRORS = (OperationalError, DisconnectionError)


@contextmanager
def atomic() -> Iterator[Session]:
    """Commit on success, roll back on any exception."""
    session = db.session
    try:
        yield session
        session.commit()
    except _STORE_ERRORS as exc:
        session.rollback()
        logger.warning("Database not available: %s", exc)
        raise Unavailable("Database not available") from exc
    except Exception:
        session.rollback()
        raise


def fail_closed(func: Callable[..., Any]) -> Callable[..., Any]:
    """Reads: map store failures to Unavailable instead of leaking driver errors."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            return func(*args, **kwargs)
        except _STORE_ERRORS as exc:
            db.session.rollback()
            logger.warning("Database not available: %s", exc)
            raise Unavailable("Database not available") from exc

    return wrapper


def retry_on_conflict(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Re-run a numbered create when two writers drew the same POW/BID number.

    The wrapped function must open its own atomic() block so every attempt
    starts from a fresh transaction.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        attempts = max(1, int(current_app.config.get("SEQUENCE_RETRY_ATTEMPTS", 3)))
        last_conflict: SequenceConflict | None = None
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except SequenceConflict as exc:
                last_conflict = exc
                logger.warning("%s: attempt %d/%d hit %s", func.__name__, attempt, attempts, exc)
        raise Unavailable(
            f"could not allocate a unique number for {last_conflict.key} after {attempts} attempts"
        ) from last_conflict

    return wrapper
