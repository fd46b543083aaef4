"""Declarative base and identifier helpers."""

from sqlalchemy.orm import DeclarativeBase
from ulid import ULID


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def new_id() -> str:
    """Generate a sortable, opaque primary key."""
    return str(ULID())
