"""
Migration runner.

The target database comes from ``DATABASE_URL`` through ``Settings``, never
from alembic.ini, so migrations and the app always agree on the URL.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy.engine import Connection

from alembic import context

from schoolerp.config import get_settings
from schoolerp.db import Base, Database
from schoolerp.db import models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()
target_metadata = Base.metadata

CONFIGURE_OPTS = {
    "target_metadata": target_metadata,
    "compare_type": True,
    # SQLite cannot ALTER most constraints in place
    "render_as_batch": settings.is_sqlite,
}


def run_offline() -> None:
    """Emit the migration SQL instead of executing it."""
    context.configure(
        url=settings.async_database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **CONFIGURE_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, **CONFIGURE_OPTS)
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    """Apply migrations over the same engine setup the application uses."""
    database = Database(settings)
    try:
        async with database.engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await database.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
