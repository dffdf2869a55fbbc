"""schedwf database layer: Base, engine, session, exceptions."""

from schedwf.db.base import Base
from schedwf.db.engine import DATABASE_URL_ENV, create_engine, resolve_database_url, sync_database_url
from schedwf.db.exceptions import (
    ConfigurationError,
    DatabaseError,
    TransientStorageError,
)
from schedwf.db.session import create_session_factory, get_session

__all__ = [
    "Base",
    "DATABASE_URL_ENV",
    "create_engine",
    "resolve_database_url",
    "sync_database_url",
    "create_session_factory",
    "get_session",
    "DatabaseError",
    "ConfigurationError",
    "TransientStorageError",
]
