"""Alembic environment for the campus-core schema.

The database URL comes from DATABASE_URL (campus_core.core.config), the
same setting the API and the worker read.  The app talks to PostgreSQL
through asyncpg; migrations run synchronously, so the driver is swapped
for psycopg2 here.
"""

from __future__ import annotations

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from alembic import context
from campus_core.core.config import SETTINGS
from campus_core.db.engine import Base

config = context.config

if SETTINGS.database_url:
    sync_url = make_url(SETTINGS.database_url).set(drivername="postgresql+psycopg2")
    config.set_main_option(
        "sqlalchemy.url", sync_url.render_as_string(hide_password=False)
    )

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Registers every table on Base.metadata.
import campus_core.db.tables  # noqa: E402, F401

target_metadata = Base.metadata

_CONFIGURE_OPTS = {
    "target_metadata": target_metadata,
    # Capacity columns and date windows are the point of this schema;
    # autogenerate should notice when their types change.
    "compare_type": True,
    "transaction_per_migration": True,
}


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting (``alembic upgrade --sql``)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_CONFIGURE_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_CONFIGURE_OPTS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
