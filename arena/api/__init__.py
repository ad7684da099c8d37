"""API module with routers and dependencies."""

from .app import create_api_app
from .deps import get_contest_service, require_user_id


__all__ = [
    "create_api_app",
    "get_contest_service",
    "require_user_id",
]
