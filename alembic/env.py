"""
Alembic environment for the portal database.

WHY: The portal runs on async SQLAlchemy against PostgreSQL (asyncpg) in
production and SQLite (aiosqlite) in development, so migrations run
through an async engine built from the same DATABASE_URL the app uses.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from client_portal.core.config import settings
from client_portal.models.base import Base

# Registers users, inquiries, proposals, payments, projects, comments
# and the log tables on Base.metadata
import client_portal.models  # noqa: F401


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Credentials come from the environment, never from alembic.ini
database_url = settings.async_database_url
config.set_main_option("sqlalchemy.url", database_url)

target_metadata = Base.metadata


def _configure_options(url: str) -> dict:
    """
    Options shared by offline and online runs.

    SQLite cannot ALTER most constraints in place, so changes there are
    rendered as batch (copy and swap) operations.
    """
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting, for review before a deploy."""
    context.configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(database_url),
    )

    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    context.configure(connection=connection, **_configure_options(database_url))

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations through an async engine; no pooling for a one-shot run."""
    section = config.get_section(config.config_ini_section, {})
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    async with engine.connect() as connection:
        await connection.run_sync(_run_with_connection)

    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
