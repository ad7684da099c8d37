"""Core infrastructure: settings, logging, exceptions, indicator math."""

from .config import settings
from .exceptions import (
    AppException,
    AuthenticationError,
    ConflictError,
    ContestClosedError,
    ContestNotEndedError,
    DataIntegrityAnomaly,
    DuplicatePredictionError,
    IncompleteMarketDataError,
    InvalidConfidenceError,
    InvalidInputError,
    NotFoundError,
    StorageFailureError,
    UpstreamUnavailableError,
)


__all__ = [
    "AppException",
    "AuthenticationError",
    "ConflictError",
    "ContestClosedError",
    "ContestNotEndedError",
    "DataIntegrityAnomaly",
    "DuplicatePredictionError",
    "IncompleteMarketDataError",
    "InvalidConfidenceError",
    "InvalidInputError",
    "NotFoundError",
    "StorageFailureError",
    "UpstreamUnavailableError",
    "settings",
]
