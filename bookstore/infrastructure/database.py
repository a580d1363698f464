"""Database configuration and session management.

Provides the async SQLAlchemy engine, the session factory and the
explicit transaction scope used by every service that mutates carts,
orders, promo codes or settings.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from bookstore.infrastructure.config import settings

logger = structlog.get_logger()

T = TypeVar("T")

# Base class for models
Base = declarative_base()

SessionFactory = async_sessionmaker[AsyncSession]


class Database:
    """Owns one async engine and its session factory.

    SQLite URLs (used by the test-suite and local runs) get a ``NullPool``
    so that every session opens its own connection on the running loop.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        if url.startswith("sqlite"):
            self.engine: AsyncEngine = create_async_engine(url, echo=echo, poolclass=NullPool)
        else:
            self.engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self.session_factory: SessionFactory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create all tables (tests and local development; production uses alembic)."""
        # Import models so that they register on Base.metadata
        from bookstore.infrastructure import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        """Drop all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self.engine.dispose()


# Global database instance
_database: Database | None = None


def get_database() -> Database:
    """Get database singleton, creating it from settings on first use."""
    global _database
    if _database is None:
        _database = Database(settings.database_url, echo=settings.debug)
    return _database


def configure_database(url: str, echo: bool = False) -> Database:
    """Replace the database singleton (used by tests and scripts).

    Args:
        url: SQLAlchemy async database URL.
        echo: Log emitted SQL.

    Returns:
        The new Database.
    """
    global _database
    _database = Database(url, echo=echo)
    return _database


def get_session_factory() -> SessionFactory:
    """Get the session factory of the current database."""
    return get_database().session_factory


async def with_transaction(
    session_factory: SessionFactory,
    work: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Run ``work`` inside a single all-or-nothing transaction.

    The transaction commits when ``work`` returns and rolls back when it
    raises; the exception is re-raised unchanged.

    Args:
        session_factory: Factory producing the session for this unit of work.
        work: Coroutine function receiving the transactional session.

    Returns:
        Whatever ``work`` returns.
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                return await work(session)
        except Exception as e:
            logger.debug("Transaction rolled back", error=str(e))
            raise
