"""
RestGate Backend — Database Engine & Session Management
=======================================================

What:  Async SQLAlchemy engine factory, session factory and declarative base.
Why:   Centralizes all database connection logic in one place.
How:   `create_engine_from_settings()` builds an engine with connection pooling;
       `create_session_factory()` binds an `async_sessionmaker` to it. Both are
       called once by the application factory and injected into the model
       stores and the auth provider.
When:  Engine is created at app assembly; sessions are opened per store operation.

Connection Pooling Strategy:
    pool_size=20:     Persistent connections for normal load
    max_overflow=10:  Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:    Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

    SQLite (tests, local development) ignores the pool arguments.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from restgate.config import Settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    `to_dict()` is how rows leave the store layer: the dispatcher and the
    response formatter only ever see plain mappings, never ORM instances.
    """

    def to_dict(self) -> Dict[str, Any]:
        return {
            column.key: getattr(self, column.key)
            for column in self.__mapper__.column_attrs
        }


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Build the async engine for `settings.database_url`.

    Echoes SQL when the log level is DEBUG.
    """
    kwargs: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not settings.database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows stay readable after the transaction closes,
    # which `to_dict()` relies on.
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """
    Create every table registered on `Base.metadata`.

    Used by tests and local development; there is no migration tooling.
    """
    # Import models so they register with Base.metadata
    import restgate.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine(engine: AsyncEngine) -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
