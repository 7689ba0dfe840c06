"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locking helpers
- Session-level advisory locks for cluster-wide single runners
"""

import logging
from contextlib import contextmanager
from typing import Optional, TypeVar, Type
from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'postgresql'
    except AttributeError:
        return False


def acquire_row_lock(db: Session, model: Type[T], filter_condition) -> Optional[T]:
    """
    Acquire a row-level lock on a database record.

    Args:
        db: Database session
        model: SQLAlchemy model class
        filter_condition: Filter to find the row

    Returns:
        The locked model instance, or None if not found

    Example:
        reservation = acquire_row_lock(db, Reservation, Reservation.id == reservation_id)
    """
    query = db.query(model).filter(filter_condition)

    # Only apply locking on PostgreSQL
    if is_postgres(db):
        query = query.with_for_update()

    return query.first()


def get_pending_with_skip_locked(
    db: Session,
    model: Type[T],
    filter_condition,
    order_by=None,
    limit: int = 50
) -> list:
    """
    Get pending records with skip_locked so concurrent workers never pick
    up the same row.
    """
    query = db.query(model).filter(filter_condition)

    if order_by is not None:
        query = query.order_by(order_by)

    if is_postgres(db):
        query = query.with_for_update(skip_locked=True)

    return query.limit(limit).all()


@contextmanager
def advisory_lock(db: Session, key: int):
    """
    Try a PostgreSQL advisory lock without waiting and yield whether it was taken.

    The lock lives on a dedicated connection so commits on ``db`` do not
    release it. Outside PostgreSQL a single process owns the database and the
    lock is always granted.
    """
    if not is_postgres(db):
        yield True
        return

    with db.get_bind().connect() as conn:
        acquired = bool(conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar())
        try:
            yield acquired
        finally:
            if acquired:
                conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
            conn.commit()
