"""
Service layer base for the prize desk.

Services own short-lived sessions from the Database session factory and
commit on leaving the scope. SQLite reports writer contention as an
OperationalError; those are retried with backoff, everything else is
raised immediately.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar('T')

TRANSIENT_ERRORS = ('database is locked', 'database is busy')


def is_transient(error: OperationalError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in TRANSIENT_ERRORS)


class BaseService:
    """Session scope and retry helpers shared by the services."""

    max_retries = 3
    backoff_seconds = 0.1

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed when the block exits cleanly, rolled back otherwise."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def execute_with_retry(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run func, retrying while SQLite reports a locked or busy database."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except OperationalError as e:
                if attempt == self.max_retries or not is_transient(e):
                    raise
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(f"{func.__name__} hit a locked database (attempt {attempt}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
