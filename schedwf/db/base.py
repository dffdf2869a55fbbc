"""Declarative base for schedwf ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all schedwf ORM models. Exposes metadata for Alembic."""
