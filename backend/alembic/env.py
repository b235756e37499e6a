"""
Alembic environment for the Pet Gourmet store.

Runs migrations over the async engine, resolving the database URL with the
same rules as the application. Autogenerate only considers tables in the
public schema that the store models declare, so Supabase-managed tables
(auth, storage, realtime) are never diffed.
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlmodel import SQLModel  # noqa: E402

import app.infrastructure.db.models  # noqa: E402, F401
from app.config.settings import settings  # noqa: E402
from app.infrastructure.db.database import build_database_url  # noqa: E402


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

STORE_TABLES = frozenset(target_metadata.tables)
MANAGED_SCHEMAS = (None, "public")


def include_name(name, type_, parent_names):
    """Limit reflection to the public schema."""
    if type_ == "schema":
        return name in MANAGED_SCHEMAS
    return True


def include_object(object, name, type_, reflected, compare_to):
    """Ignore reflected tables the store does not own."""
    if type_ == "table" and reflected and compare_to is None:
        return name in STORE_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_name=include_name,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without a database connection."""
    _configure(
        url=build_database_url(settings),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    _configure(connection=connection, compare_server_default=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(build_database_url(settings), poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
