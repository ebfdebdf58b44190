"""
Unit-of-work helper shared by the application services.

Every multi-row mutation runs inside ``transaction(session)``. The
outermost block commits or rolls back; inner blocks join it, so a
service can call another service without committing half of its work.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from roadwatch.core.logging import get_logger
from roadwatch.domain.exceptions import ConflictError, TransientFailureError

logger = get_logger(__name__)

_DEPTH_KEY = "roadwatch_transaction_depth"


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block atomically.

    Args:
        session: Session the block writes through.

    Yields:
        AsyncSession: The same session.

    Raises:
        ConflictError: A unique constraint rejected the writes.
        TransientFailureError: Deadlock or lost connection; safe to retry.
    """
    depth = session.info.get(_DEPTH_KEY, 0)
    if depth:
        session.info[_DEPTH_KEY] = depth + 1
        try:
            yield session
        finally:
            session.info[_DEPTH_KEY] = depth
        return

    session.info[_DEPTH_KEY] = 1
    try:
        yield session
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("transaction_conflict", error=str(e.orig))
        raise ConflictError("Record conflicts with existing data") from e
    except OperationalError as e:
        await session.rollback()
        logger.error("transaction_transient_failure", error=str(e.orig))
        raise TransientFailureError("Database temporarily unavailable, retry the request") from e
    except Exception:
        await session.rollback()
        raise
    finally:
        session.info.pop(_DEPTH_KEY, None)


def transaction_active(session: AsyncSession) -> bool:
    """Whether ``session`` is inside a ``transaction()`` block."""
    return bool(session.info.get(_DEPTH_KEY))
