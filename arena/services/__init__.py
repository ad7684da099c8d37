"""External data services."""

from .market_data import MarketDataProvider, get_market_data_provider
from .market_hours import is_market_open, next_market_open


__all__ = [
    "MarketDataProvider",
    "get_market_data_provider",
    "is_market_open",
    "next_market_open",
]
