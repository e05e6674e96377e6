"""Transaction scope for core operations.

Every core operation runs inside exactly one database transaction. A
domain error raised inside the block rolls the transaction back and
propagates unchanged. A database error caused by a conflicting writer
rolls back and surfaces as ``TransactionAbortedError``, the only error
that is safe to retry.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.domain.exceptions import TransactionAbortedError

logger = structlog.get_logger()

# serialization_failure, deadlock_detected, lock_not_available
CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

# SQLITE_BUSY, SQLITE_LOCKED (primary result codes)
SQLITE_CONFLICT_CODES = frozenset({5, 6})
SQLITE_CONFLICT_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def is_conflict(exc: DBAPIError) -> bool:
    """Check whether a database error was caused by a conflicting writer.

    PostgreSQL errors are judged by SQLSTATE. SQLite only reports
    contention as BUSY or LOCKED; a missing table, an I/O error or a
    lost connection is not a conflict and is not worth retrying.

    Args:
        exc: Error raised by SQLAlchemy.

    Returns:
        True if retrying the whole transaction may succeed.
    """
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate in CONFLICT_SQLSTATES
    if not isinstance(exc, OperationalError):
        return False

    sqlite_code = getattr(orig, "sqlite_errorcode", None)
    if sqlite_code is not None:
        return (sqlite_code & 0xFF) in SQLITE_CONFLICT_CODES
    message = str(orig).lower()
    return any(text in message for text in SQLITE_CONFLICT_MESSAGES)


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: str,
    order_id: str | None = None,
) -> AsyncIterator[AsyncSession]:
    """Open a session and run the block in a single transaction.

    Commits when the block exits normally, rolls back otherwise.

    Args:
        session_factory: Factory for new sessions.
        operation: Operation name used in errors and logs.
        order_id: Order involved, when known.

    Yields:
        AsyncSession bound to the open transaction.

    Raises:
        TransactionAbortedError: If a conflicting writer aborted the transaction.
    """
    try:
        async with session_factory() as session:
            async with session.begin():
                yield session
    except DBAPIError as exc:
        if not is_conflict(exc):
            raise
        logger.warning(
            "Transaction aborted",
            operation=operation,
            order_id=order_id,
            error=str(exc.orig),
        )
        raise TransactionAbortedError(operation, str(exc.orig), order_id) from exc
