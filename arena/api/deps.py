"""API dependencies: contest service and caller identity."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from arena.contest.service import ContestService
from arena.core.exceptions import AuthenticationError


def get_contest_service(request: Request) -> ContestService:
    """Contest service built in the application lifespan."""
    return request.app.state.contest_service


def require_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller's user id, supplied by the authenticating gateway in ``X-User-ID``."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationError(message="X-User-ID header is required")
    return user_id


Service = Annotated[ContestService, Depends(get_contest_service)]
UserId = Annotated[str, Depends(require_user_id)]
