"""Main application entry point."""

from __future__ import annotations

from arena.api.app import create_api_app
from arena.core.config import settings
from arena.core.logging import get_logger, setup_logging


setup_logging()

logger = get_logger("main")

# Application instance
app = create_api_app()

logger.info(
    f"{settings.app_name} {settings.app_version} ready",
    extra={"environment": settings.environment},
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "arena.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
