"""Pydantic schemas for the HTTP API."""

from .common import CamelModel, ErrorResponse, HealthResponse
from .contests import (
    ContestResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    PredictionListResponse,
    PredictionRequest,
    PredictionResponse,
    ResolutionResponse,
    ResolveRequest,
    StockListResponse,
    StockResponse,
    StockStatsResponse,
)


__all__ = [
    "CamelModel",
    "ContestResponse",
    "ErrorResponse",
    "HealthResponse",
    "LeaderboardEntryResponse",
    "LeaderboardResponse",
    "PredictionListResponse",
    "PredictionRequest",
    "PredictionResponse",
    "ResolutionResponse",
    "ResolveRequest",
    "StockListResponse",
    "StockResponse",
    "StockStatsResponse",
]
