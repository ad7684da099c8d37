"""API routes package."""

from . import contests, health


__all__ = ["contests", "health"]
