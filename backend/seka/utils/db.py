"""Database connection, session management and transactional retry."""

import logging
from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from seka.config import Settings, get_settings
from seka.models.base import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
_SQLITE_LOCK_MARKERS = ("database is locked", "database table is locked")


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    kwargs: dict = {"echo": settings.db_echo, "future": True}
    if not settings.database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Application-wide engine, built on first use."""
    return create_engine_from_settings(get_settings())


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return create_session_factory(get_engine())


def is_conflict_error(exc: BaseException) -> bool:
    """True for errors that a fresh transaction attempt can resolve.

    Covers optimistic version mismatches, PostgreSQL serialization failures
    and deadlocks, and SQLite write-lock contention. Other operational errors
    (missing tables, refused connections) are not retried.
    """
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(
            exc.orig, "pgcode", None
        )
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        if isinstance(exc, OperationalError):
            message = str(exc.orig).lower()
            return any(marker in message for marker in _SQLITE_LOCK_MARKERS)
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
    settings: Settings | None = None,
) -> T:
    """Run ``operation`` inside one transaction, retrying on write conflicts.

    Each attempt gets a fresh session; anything raised rolls the whole
    attempt back. Domain errors are never retried.
    """
    settings = settings or get_settings()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts or settings.tx_max_attempts),
        wait=wait_exponential(
            multiplier=settings.tx_retry_min_wait,
            min=settings.tx_retry_min_wait,
            max=settings.tx_retry_max_wait,
        ),
        retry=retry_if_exception(is_conflict_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    result: T
    async for attempt in retrying:
        with attempt:
            async with session_factory() as session:
                async with session.begin():
                    result = await operation(session)
    return result


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create every table (development and tests; production uses migrations)."""
    import seka.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

