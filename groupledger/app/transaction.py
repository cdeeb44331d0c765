"""
transaction.py — The unit-of-work boundary for every write.

    with atomic(db.session):
        ...flush rows...
    # committed here, or rolled back and re-raised

Everything flushed inside the block commits together or not at all.
An AppError raised inside the block rolls back and propagates unchanged.
A SQLAlchemyError (lost connection, constraint violation, serialization
failure, lock timeout) rolls back and surfaces as PERSISTENCE_FAILURE (503):
no partial state exists afterwards, so the caller may retry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session: Session, label: str = "write") -> Iterator[Session]:
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Rolled back %s after storage error: %s", label, exc)
        raise AppError(
            ErrorCode.PERSISTENCE_FAILURE,
            "The change could not be saved. Nothing was written; please retry.",
            503,
        ) from exc
    except Exception:
        session.rollback()
        logger.debug("Rolled back %s", label)
        raise
