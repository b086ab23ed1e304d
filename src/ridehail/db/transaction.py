"""Transaction utilities for explicit transaction boundaries.

Every ride lifecycle operation runs inside one transaction so that a failed
precondition never leaves a partial ledger or status change behind.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Context manager for explicit transaction boundaries.

    Commits on successful completion, rolls back on any exception.

    Example:
        with transaction(session):
            ledger.debit(customer_id, fare, LedgerEntryType.RIDE_PAYMENT, ride_id=ride_id)
            rides.create(...)
        # Automatic commit if no exception, rollback otherwise
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


@contextmanager
def savepoint(session: Session) -> Iterator[Session]:
    """Context manager for nested transaction (savepoint).

    Creates a savepoint within an existing transaction. On exception,
    rolls back only to the savepoint without affecting the outer transaction.
    Used by wallet transfers so a failed credit undoes its paired debit.
    """
    nested = session.begin_nested()
    try:
        yield session
        nested.commit()
    except Exception:
        nested.rollback()
        raise
