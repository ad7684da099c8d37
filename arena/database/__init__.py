"""Database layer: SQLAlchemy async engine, sessions and ORM models."""

from .connection import (
    close_database,
    get_session,
    get_session_factory,
    init_database,
)
from .orm import Base


__all__ = [
    "Base",
    "close_database",
    "get_session",
    "get_session_factory",
    "init_database",
]
