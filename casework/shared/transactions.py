import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from casework.shared.errors import EngineError, InternalError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def atomic(db: AsyncSession, operation: str, **context) -> AsyncIterator[AsyncSession]:
    """Run one logical operation as a single transaction.

    Commits when the block exits cleanly. Any error rolls back every write made
    inside the block; datastore errors are logged and re-raised as a generic
    InternalError so no driver detail leaks to callers.
    """
    try:
        yield db
        await db.commit()
    except EngineError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception(f"{operation} failed {context}")
        raise InternalError(f"Failed to {operation.replace('_', ' ')}") from exc
    except Exception:
        await db.rollback()
        raise
