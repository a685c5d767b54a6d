"""
Non-blocking row locks.

Concurrent webhook deliveries for the same record must not wait on each
other. The lock is taken with SKIP LOCKED: a contender gets no row back and
fails fast with RecordLockedError, leaving rescheduling to the job retry
policy.

Usage:
    with non_blocking_lock(db, product) as locked:
        locked.title = "New title"
    # committed here
"""

import logging
from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from soundfy.database.exceptions import RecordLockedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def non_blocking_lock(db: Session, record: T, no_key_update: bool = True) -> Iterator[T]:
    """
    Re-read a persisted record under SELECT ... FOR [NO KEY] UPDATE SKIP LOCKED.

    The block runs inside the current transaction, which is committed when
    the block exits normally and rolled back when it raises.

    Args:
        db: Database session
        record: Persisted ORM instance to lock
        no_key_update: Use FOR NO KEY UPDATE so foreign-key inserts that
            reference the row are not blocked

    Yields:
        The locked instance, refreshed from the database

    Raises:
        RecordLockedError: If the row is locked by another transaction or
            no longer exists
        ValueError: If the record has not been persisted
    """
    model = type(record)
    state = inspect(record)
    if state.identity is None:
        raise ValueError(f"Cannot lock unsaved {model.__name__}")

    primary_key = inspect(model).primary_key
    criteria = [column == value for column, value in zip(primary_key, state.identity)]

    locked = (
        db.query(model)
        .filter(*criteria)
        .with_for_update(skip_locked=True, key_share=no_key_update)
        .populate_existing()
        .one_or_none()
    )

    if locked is None:
        record_id = state.identity[0] if len(state.identity) == 1 else state.identity
        logger.info(
            "Row lock not acquired",
            extra={"model": model.__name__, "record_id": record_id},
        )
        raise RecordLockedError(
            f"Record already locked by another process: {record_id}",
            model=model.__name__,
            record_id=record_id,
        )

    try:
        yield locked
        db.commit()
    except Exception:
        db.rollback()
        raise
