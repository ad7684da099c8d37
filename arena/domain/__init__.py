"""Domain models for strongly-typed data throughout the application.

Usage:
    from arena.domain import ContestPeriod, Prediction, PriceSample

    period = ContestPeriod(id="wk-42", start_date=..., end_date=..., prediction_deadline=...)
    data = period.model_dump()
"""

from arena.domain.contest import (
    AlgorithmicAuthor,
    Author,
    ContestInfo,
    ContestPeriod,
    ContestResolution,
    ContestState,
    Direction,
    HouseBenchmark,
    HumanAuthor,
    LeaderboardEntry,
    Prediction,
    Stock,
    StockQuote,
    StockStats,
)
from arena.domain.price import (
    MarketData,
    PriceSample,
    iter_price_samples,
    market_data_from_samples,
    samples_from_chart,
    samples_from_dataframe,
)

__all__ = [
    # Contest
    "AlgorithmicAuthor",
    "Author",
    "ContestInfo",
    "ContestPeriod",
    "ContestResolution",
    "ContestState",
    "Direction",
    "HouseBenchmark",
    "HumanAuthor",
    "LeaderboardEntry",
    "Prediction",
    "Stock",
    "StockQuote",
    "StockStats",
    # Price
    "MarketData",
    "PriceSample",
    "iter_price_samples",
    "market_data_from_samples",
    "samples_from_chart",
    "samples_from_dataframe",
]
