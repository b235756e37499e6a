"""
Database Configuration for the Pet Gourmet store

Async SQLAlchemy engine and session management over the Supabase
Postgres database. Request sessions commit on success and roll back on error.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config.settings import Settings, settings
from app.infrastructure.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

LOCAL_SUPABASE_PATTERN = re.compile(r"https?://(localhost|127\.0\.0\.1):\d+")
HOSTED_SUPABASE_PATTERN = re.compile(r"https?://([^.]+)\.supabase\.co")


def build_database_url(config: Settings) -> str:
    """
    Resolve the asyncpg connection URL.

    DATABASE_URL wins when set. Otherwise the URL is derived from
    SUPABASE_URL + SUPABASE_PASSWORD (hosted project or local CLI stack).
    """
    if config.database_url:
        url = config.database_url
        for prefix in ("postgresql://", "postgres://"):
            if url.startswith(prefix):
                return url.replace(prefix, "postgresql+asyncpg://", 1)
        return url

    local = LOCAL_SUPABASE_PATTERN.match(config.supabase_url or "")
    if local:
        password = quote_plus(config.supabase_password or "postgres")
        return f"postgresql+asyncpg://postgres:{password}@{local.group(1)}:54322/postgres"

    if not config.supabase_password:
        raise ConfigurationError(
            "Either DATABASE_URL or SUPABASE_URL + SUPABASE_PASSWORD is required",
            missing_keys=["DATABASE_URL", "SUPABASE_PASSWORD"],
        )

    hosted = HOSTED_SUPABASE_PATTERN.match(config.supabase_url or "")
    if not hosted:
        raise ConfigurationError(f"Invalid SUPABASE_URL format: {config.supabase_url}")

    project_ref = hosted.group(1)
    password = quote_plus(config.supabase_password)
    return (
        f"postgresql+asyncpg://postgres:{password}"
        f"@db.{project_ref}.supabase.co:5432/postgres"
    )


class DatabaseManager:
    """
    Owns the async engine and session factory.

    Singleton so the whole process shares one connection pool.
    """

    _instance: Optional["DatabaseManager"] = None
    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        self._engine = create_async_engine(
            build_database_url(settings),
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


def get_db_manager() -> DatabaseManager:
    return DatabaseManager()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Everything a request writes (an order and all its items, a webhook's
    record update plus its processed-event marker) commits together.
    """
    async with get_db_manager().session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for work outside a request (cron CLI, per-item billing units).

    Usage:
        async with get_session_context() as session:
            ...
    """
    async with get_db_manager().session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verify the database is reachable (app startup)."""
    async with get_db_manager().session_factory() as session:
        await session.execute(text("SELECT 1"))
    logger.info("Database connection verified")


async def close_db() -> None:
    """Close the connection pool (app shutdown)."""
    await get_db_manager().close()
