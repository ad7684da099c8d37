"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from arena.cache.client import valkey_healthcheck
from arena.core.config import settings
from arena.database.connection import database_healthcheck
from arena.schemas.common import HealthResponse


router = APIRouter(prefix="/health")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check() -> HealthResponse:
    """
    Perform health check on API and dependencies.

    Returns overall health status and individual service checks.
    """
    checks = {
        "database": await database_healthcheck(),
        "cache": await valkey_healthcheck(),
    }

    if all(checks.values()):
        status = "healthy"
    elif checks["database"]:
        status = "degraded"  # DB ok, locks and events unavailable
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=settings.app_version, checks=checks)
