"""
Market data provider backed by yfinance.

All blocking yfinance calls go through a single ThreadPoolExecutor and are
bounded by ``settings.market_data_timeout``. Failures surface as
UpstreamUnavailableError; batch fetches isolate failures per symbol.

Usage:
    from arena.services.market_data import get_market_data_provider

    provider = get_market_data_provider()
    quote = await provider.get_current("AAPL")
    quotes = await provider.get_current_batch(["AAPL", "MSFT"])
    samples = await provider.get_history("AAPL", interval="1d", range_="3mo")
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Iterable, Optional, TypeVar

import pandas as pd
import yfinance as yf

from arena.core.config import settings
from arena.core.exceptions import UpstreamUnavailableError
from arena.core.logging import get_logger
from arena.domain.price import (
    MarketData,
    PriceSample,
    market_data_from_samples,
    samples_from_dataframe,
)


logger = get_logger("services.market_data")

T = TypeVar("T")

# fast_info attributes read for the live quote
QUOTE_FIELDS = ("last_price", "previous_close", "open", "day_high", "day_low", "last_volume")

# Short lookback used to fill quote gaps when fetching the current price
SNAPSHOT_RANGE = "5d"


def _fetch_history_sync(symbol: str, interval: str, period: str) -> Optional[pd.DataFrame]:
    """Fetch OHLCV history from yfinance (blocking)."""
    df = yf.Ticker(symbol).history(period=period, interval=interval, auto_adjust=False)
    if df is None or df.empty:
        return None
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.droplevel(1)
    return df


def _fetch_quote_sync(symbol: str) -> dict[str, Any]:
    """Read the live quote fields from ``Ticker.fast_info`` (blocking)."""
    info = yf.Ticker(symbol).fast_info
    quote: dict[str, Any] = {}
    for name in QUOTE_FIELDS:
        try:
            quote[name] = info[name]
        except (KeyError, TypeError, ValueError):
            quote[name] = None
    return quote


class MarketDataProvider:
    """Async facade over yfinance returning normalized domain records."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self.timeout = timeout or settings.market_data_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.market_data_workers,
            thread_name_prefix="yfinance",
        )

    async def _run(self, symbol: str, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, partial(func, *args)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                message=f"Market data request timed out for {symbol}",
                details={"symbol": symbol, "timeout": self.timeout},
            ) from e
        except Exception as e:
            raise UpstreamUnavailableError(
                message=f"Market data request failed for {symbol}",
                details={"symbol": symbol, "reason": str(e)},
            ) from e

    async def get_history(
        self, symbol: str, interval: str = "1d", range_: str = "3mo"
    ) -> list[PriceSample]:
        """Normalized price history, oldest first. Empty when nothing usable."""
        symbol = symbol.upper()
        df = await self._run(symbol, _fetch_history_sync, symbol, interval, range_)
        samples = list(samples_from_dataframe(df))
        logger.debug(f"History for {symbol}: {len(samples)} samples ({interval}/{range_})")
        return samples

    async def get_current(self, symbol: str) -> Optional[MarketData]:
        """
        Current quote snapshot, or None when the provider has no price.

        Missing quote fields are filled from the most recent daily samples.
        """
        symbol = symbol.upper()
        quote, df = await asyncio.gather(
            self._run(symbol, _fetch_quote_sync, symbol),
            self._run(symbol, _fetch_history_sync, symbol, "1d", SNAPSHOT_RANGE),
            return_exceptions=True,
        )
        if isinstance(quote, BaseException) and isinstance(df, BaseException):
            raise quote
        if isinstance(quote, BaseException):
            logger.debug(f"Live quote unavailable for {symbol}, using history: {quote}")
            quote = None
        if isinstance(df, BaseException):
            logger.debug(f"Snapshot history unavailable for {symbol}: {df}")
            df = None
        return market_data_from_samples(symbol, samples_from_dataframe(df), quote)

    async def get_current_batch(
        self, symbols: Iterable[str]
    ) -> dict[str, Optional[MarketData]]:
        """
        Fetch current quotes concurrently.

        Every requested symbol gets an entry; a failed symbol maps to None
        without affecting the others.
        """
        ordered = list(dict.fromkeys(s.upper() for s in symbols))
        results = await asyncio.gather(
            *(self.get_current(s) for s in ordered), return_exceptions=True
        )

        quotes: dict[str, Optional[MarketData]] = {}
        for symbol, result in zip(ordered, results):
            if isinstance(result, BaseException):
                logger.warning(f"Quote fetch failed for {symbol}: {result}")
                quotes[symbol] = None
            else:
                quotes[symbol] = result
        return quotes

    def close(self) -> None:
        self._executor.shutdown(wait=False)


_instance: Optional[MarketDataProvider] = None


def get_market_data_provider() -> MarketDataProvider:
    """Get singleton MarketDataProvider instance."""
    global _instance
    if _instance is None:
        _instance = MarketDataProvider()
    return _instance
