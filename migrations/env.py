"""Alembic environment for the scheduler tables."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection

from schedwf.db import DATABASE_URL_ENV, Base, sync_database_url

# Registers the scheduler tables on Base.metadata.
from schedwf.store.models import ExecutionRecordORM, LeaseORM, ScheduleORM  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _migration_url() -> str:
    """SCHEDWF_DATABASE_URL wins over alembic.ini; Alembic runs on psycopg2."""
    url = os.environ.get(DATABASE_URL_ENV, "").strip() or config.get_main_option("sqlalchemy.url") or ""
    return sync_database_url(url)


def run_migrations_offline() -> None:
    context.configure(
        url=_migration_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = config.attributes.get("connection", None)
    if connectable is None:
        connectable = create_engine(_migration_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        do_run_migrations(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
