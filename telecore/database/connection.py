"""
Database connection management with SQLAlchemy async engine.

Provides the global async engine and session factory, a transactional
session context manager for jobs and scripts, and the FastAPI dependency
used by the HTTP layer.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from telecore.core.config import get_settings
from telecore.core.logging import get_logger
from telecore.database.base import Base

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _convert_database_url_to_async(url: str) -> str:
    """
    Convert a plain PostgreSQL URL to the asyncpg driver form.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create async SQLAlchemy engine.

    PostgreSQL engines get a sized connection pool; SQLite engines (used
    by tests and local tooling) run without pooling.

    Args:
        database_url: Override for the configured database URL

    Returns:
        Configured async SQLAlchemy engine
    """
    settings = get_settings()
    url = _convert_database_url_to_async(database_url or settings.database_url)

    engine_kwargs: dict[str, Any] = {"echo": settings.debug}
    if url.startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
    elif settings.is_test:
        engine_kwargs["poolclass"] = NullPool
        engine_kwargs["pool_pre_ping"] = True
    else:
        engine_kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={
                "server_settings": {"application_name": settings.app_name},
                "command_timeout": 60,
            },
        )

    engine = create_async_engine(url, **engine_kwargs)

    logger.info(
        "Database engine created",
        dialect=engine.dialect.name,
        environment=settings.environment,
    )

    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by services for an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the global async database engine.

    Raises:
        RuntimeError: If engine initialization fails
    """
    global _engine

    if _engine is None:
        try:
            _engine = create_engine()
        except Exception as e:
            logger.error(
                "Failed to create database engine",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RuntimeError(f"Database engine initialization failed: {e}") from e

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
        logger.info("Database session factory created")

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session that commits on success and rolls back on error.

    Services commit their own units of work; the final commit here only
    flushes anything a caller left pending.
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database session injection.

    Example:
        @router.get("/orders/{order_id}")
        async def get_order(order_id: UUID, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session() as session:
        yield session


async def create_all(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create every table known to the metadata.

    Used by tests and local development; deployed databases are managed
    by Alembic migrations.
    """
    import telecore.database.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the global engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None
