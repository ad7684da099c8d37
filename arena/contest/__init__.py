"""Contest prediction & scoring engine.

Usage:
    from arena.contest import ContestService, generate_house_prediction

    output = generate_house_prediction(current_price, closes, "AAPL")
    resolution = await service.resolve_contest("wk-42", {"stk-aapl": 187.5})
"""

from .config import ContestConfig, get_contest_config
from .events import DomainEvent, DomainEventType, InMemoryEventChannel, ValkeyEventChannel
from .ledger import ContestStore, PredictionLedger
from .lifecycle import (
    activation_request,
    contest_state,
    ensure_open,
    select_current_contest,
    select_display_contest,
    seconds_remaining,
)
from .predictor import HousePrediction, Reasoning, generate_house_prediction
from .scoring import build_leaderboard, grade, grade_call, house_benchmark, points_for, stock_sentiment
from .service import ContestService


__all__ = [
    # Config
    "ContestConfig",
    "get_contest_config",
    # Events
    "DomainEvent",
    "DomainEventType",
    "InMemoryEventChannel",
    "ValkeyEventChannel",
    # Lifecycle
    "activation_request",
    "contest_state",
    "ensure_open",
    "seconds_remaining",
    "select_current_contest",
    "select_display_contest",
    # Predictor
    "HousePrediction",
    "Reasoning",
    "generate_house_prediction",
    # Ledger & scoring
    "ContestStore",
    "PredictionLedger",
    "build_leaderboard",
    "grade",
    "grade_call",
    "house_benchmark",
    "points_for",
    "stock_sentiment",
    # Service
    "ContestService",
]
