"""
Async engine, session factory and request-scoped sessions.
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

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool and driver options for the configured backend."""
    settings = get_settings()
    options: Dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}

    backend = make_url(database_url).get_backend_name()
    if backend == "postgresql":
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_recycle=3600,
            connect_args={"server_settings": {"application_name": "parlomo_platform"}},
        )
    elif backend == "sqlite":
        # Local development only; aiosqlite has no server-side pool
        options["connect_args"] = {"check_same_thread": False}
    return options


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services keep using loaded rows after commit
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=True)


async def init_database(create_tables: bool | None = None) -> None:
    """
    Open the engine and connect the cache.

    Args:
        create_tables: Run ``create_all`` on startup. Defaults to the
            ``database_create_tables`` setting; migrations own the schema
            otherwise.
    """
    global engine, async_session_factory

    settings = get_settings()
    engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
    async_session_factory = create_session_factory(engine)

    if settings.database_create_tables if create_tables is None else create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    await init_cache()
    logger.info(f"Database ready ({make_url(settings.database_url).get_backend_name()})")


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
    Unit of work: commits when the block exits cleanly, rolls back otherwise.

    Used by Celery tasks, health checks and scripts outside a request.
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
