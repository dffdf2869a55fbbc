"""Database URL resolution and async engine construction."""

from __future__ import annotations

import os

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from schedwf.config.models import DatabaseConfig
from schedwf.db.exceptions import ConfigurationError

DATABASE_URL_ENV = "SCHEDWF_DATABASE_URL"

ASYNC_DRIVER = "postgresql+asyncpg"
SYNC_DRIVER = "postgresql+psycopg2"
_POSTGRES_SCHEMES = ("postgresql+asyncpg", "postgresql+psycopg2", "postgresql", "postgres")


def _with_driver(url: str, driver: str) -> str:
    scheme, sep, rest = url.strip().partition("://")
    if not sep or scheme not in _POSTGRES_SCHEMES:
        raise ConfigurationError(
            "Database URL must be PostgreSQL (postgresql://, postgresql+asyncpg:// or postgresql+psycopg2://)."
        )
    return f"{driver}://{rest}"


def resolve_database_url(configured: str | None = None) -> str:
    """Pick the configured URL, else ``SCHEDWF_DATABASE_URL``; normalized to asyncpg.

    Raises:
        ConfigurationError: neither source is set, or the URL is not PostgreSQL.
    """
    url = (configured or "").strip() or os.environ.get(DATABASE_URL_ENV, "").strip()
    if not url:
        raise ConfigurationError(f"Database URL not set. Set {DATABASE_URL_ENV} or database.url.")
    return _with_driver(url, ASYNC_DRIVER)


def sync_database_url(configured: str | None = None) -> str:
    """Same resolution as :func:`resolve_database_url`, with the psycopg2 driver for Alembic."""
    return _with_driver(resolve_database_url(configured), SYNC_DRIVER)


def create_engine(config: DatabaseConfig | str | None = None) -> AsyncEngine:
    """Create the scheduler's async engine.

    A plain string is taken as the URL with default pool settings. Connections
    are pre-pinged and recycled every 30 minutes so a replica survives
    database failovers between poll cycles.
    """
    if not isinstance(config, DatabaseConfig):
        config = DatabaseConfig(url=config or "")
    return create_async_engine(
        resolve_database_url(config.url),
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=config.echo,
    )
