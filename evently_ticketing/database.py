"""
Database engine, session factory and the request-scoped session dependency.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .cache import close_cache, init_cache
from .config import get_settings
from .models.base import Base

logger = logging.getLogger(__name__)

# Set by init_database(); None until the app or a task has started
engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Pool options per backend; SQLite has no server-side pool or settings."""
    settings = get_settings()
    options: Dict[str, Any] = {"echo": settings.database_echo}

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        return options

    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.database_pool_recycle_seconds,
    )
    if backend == "postgresql":
        options["connect_args"] = {"server_settings": {"application_name": "evently_ticketing"}}
    return options


def create_database_engine(database_url: str | None = None) -> AsyncEngine:
    url = database_url or get_settings().database_url
    return create_async_engine(url, **_engine_options(url))


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services keep using loaded rows after commit (responses, logs)
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def init_database() -> None:
    """
    Open the engine and the cache.

    Tables are created from the models only when
    ``database_create_tables`` is set; otherwise Alembic owns the schema.
    """
    global engine, async_session_factory

    settings = get_settings()
    logger.info(f"Connecting to database ({make_url(settings.database_url).get_backend_name()})")

    engine = create_database_engine(settings.database_url)
    async_session_factory = create_session_factory(engine)

    if settings.database_create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    await init_cache()
    logger.info("Database and cache ready")


async def close_database() -> None:
    global engine, async_session_factory

    if engine is not None:
        await engine.dispose()
        engine = None
        async_session_factory = None
        logger.info("Database connections closed")

    await close_cache()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session that commits on success and rolls back on any error.

    Usage:
        async with get_db_session() as session:
            await BookingService(session).expire_stale_bookings()
    """
    if async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with get_db_session() as session:
        yield session
