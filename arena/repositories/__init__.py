"""Repositories: SQLAlchemy-backed stores returning domain records."""

from .contests_orm import ContestRepository


__all__ = ["ContestRepository"]
