"""Engine error kinds and centralized exception handlers."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception with structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 problem+json style response."""
        return {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
            "retryable": self.retryable,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(AppException):
    """Resource not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class AuthenticationError(AppException):
    """Caller identity missing."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTHENTICATION_REQUIRED"
    message = "Authentication required"


class ConflictError(AppException):
    """Resource conflict."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


class InvalidInputError(AppException):
    """Malformed confidence, direction or price."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INVALID_INPUT"
    message = "Invalid prediction input"


class InvalidConfidenceError(InvalidInputError):
    """Confidence level outside 1-10."""

    error_code = "INVALID_CONFIDENCE"
    message = "Confidence level must be between 1 and 10"


class ContestClosedError(ConflictError):
    """Submission attempted while the contest is not open."""

    error_code = "CONTEST_CLOSED"
    message = "This contest is not accepting predictions"


class ContestNotEndedError(ConflictError):
    """Resolution attempted before the contest end date."""

    error_code = "CONTEST_NOT_ENDED"
    message = "The contest has not ended yet"


class DuplicatePredictionError(ConflictError):
    """A prediction already exists for this user, stock and contest."""

    error_code = "DUPLICATE_PREDICTION"
    message = "You already made a prediction for this stock in this contest"


class IncompleteMarketDataError(AppException):
    """Realized prices missing for one or more required stocks."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INCOMPLETE_MARKET_DATA"
    message = "Realized prices are missing for some stocks"


class UpstreamUnavailableError(AppException):
    """Market data provider failed or timed out."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "UPSTREAM_UNAVAILABLE"
    message = "Market data temporarily unavailable. Please try again."
    retryable = True


class StorageFailureError(AppException):
    """Persistence layer error or timeout."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "STORAGE_FAILURE"
    message = "Storage operation failed"


class DataIntegrityAnomaly(AppException):
    """Reference data inconsistency that the engine mitigates on its own.

    Never raised to callers; built so the anomaly is logged with the same
    structure as the other error kinds.
    """

    error_code = "DATA_INTEGRITY_ANOMALY"
    message = "Data integrity anomaly detected"


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger = logging.getLogger("arena.error")
        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "path": request.url.path,
                "method": request.method,
            },
        )

        from .config import settings

        if settings.debug:
            message = str(exc)
        else:
            message = "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": message,
                "status": 500,
                "retryable": False,
            },
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )
