"""Tests for the yfinance-backed market data provider.

yfinance is never called: the blocking fetch helpers are patched.
"""

import time
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from arena.core.exceptions import UpstreamUnavailableError
from arena.services import market_data
from arena.services.market_data import MarketDataProvider, _fetch_quote_sync


def frame(closes: list[float]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Open": closes,
            "High": [c + 1 for c in closes],
            "Low": [c - 1 for c in closes],
            "Close": closes,
            "Volume": [1000] * len(closes),
        },
        index=pd.date_range("2026-01-05", periods=len(closes), freq="D", tz="UTC"),
    )


@pytest.fixture
def provider():
    p = MarketDataProvider(timeout=2.0, max_workers=2)
    yield p
    p.close()


class TestGetCurrent:
    """Tests for MarketDataProvider.get_current()."""

    @pytest.mark.asyncio
    async def test_live_quote(self, provider, monkeypatch):
        monkeypatch.setattr(
            market_data, "_fetch_quote_sync",
            lambda symbol: {"last_price": 110.0, "previous_close": 100.0, "day_high": 111.0},
        )
        monkeypatch.setattr(
            market_data, "_fetch_history_sync", lambda symbol, interval, period: frame([99.0, 100.0])
        )

        quote = await provider.get_current("aapl")

        assert quote.symbol == "AAPL"
        assert quote.price == 110.0
        assert quote.change_percent == 10.0
        assert quote.high == 111.0
        assert quote.low == 99.0

    @pytest.mark.asyncio
    async def test_quote_failure_falls_back_to_history(self, provider, monkeypatch):
        def broken(symbol):
            raise RuntimeError("fast_info unavailable")

        monkeypatch.setattr(market_data, "_fetch_quote_sync", broken)
        monkeypatch.setattr(
            market_data, "_fetch_history_sync", lambda symbol, interval, period: frame([100.0, 104.0])
        )

        quote = await provider.get_current("MSFT")

        assert quote.price == 104.0
        assert quote.previous_close == 100.0

    @pytest.mark.asyncio
    async def test_both_sources_failing_raises(self, provider, monkeypatch):
        def broken(*args):
            raise RuntimeError("network down")

        monkeypatch.setattr(market_data, "_fetch_quote_sync", broken)
        monkeypatch.setattr(market_data, "_fetch_history_sync", broken)

        with pytest.raises(UpstreamUnavailableError) as exc:
            await provider.get_current("AAPL")
        assert exc.value.retryable is True
        assert exc.value.details["symbol"] == "AAPL"

    @pytest.mark.asyncio
    async def test_no_price_anywhere_is_none(self, provider, monkeypatch):
        monkeypatch.setattr(market_data, "_fetch_quote_sync", lambda symbol: {"last_price": None})
        monkeypatch.setattr(market_data, "_fetch_history_sync", lambda *args: None)

        assert await provider.get_current("ZZZZ") is None

    @pytest.mark.asyncio
    async def test_timeout(self, monkeypatch):
        def slow(*args):
            time.sleep(0.5)
            return {}

        monkeypatch.setattr(market_data, "_fetch_quote_sync", slow)
        monkeypatch.setattr(market_data, "_fetch_history_sync", slow)
        provider = MarketDataProvider(timeout=0.05, max_workers=2)
        try:
            with pytest.raises(UpstreamUnavailableError) as exc:
                await provider.get_current("AAPL")
            assert exc.value.details["timeout"] == 0.05
        finally:
            provider.close()


class TestGetCurrentBatch:
    """Tests for MarketDataProvider.get_current_batch()."""

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, provider, monkeypatch):
        def quote(symbol):
            if symbol == "BAD":
                raise RuntimeError("delisted")
            return {"last_price": 10.0, "previous_close": 10.0}

        def hist(symbol, interval, period):
            if symbol == "BAD":
                raise RuntimeError("delisted")
            return None

        monkeypatch.setattr(market_data, "_fetch_quote_sync", quote)
        monkeypatch.setattr(market_data, "_fetch_history_sync", hist)

        quotes = await provider.get_current_batch(["aapl", "BAD", "AAPL", "msft"])

        assert list(quotes) == ["AAPL", "BAD", "MSFT"]
        assert quotes["BAD"] is None
        assert quotes["AAPL"].price == 10.0
        assert quotes["MSFT"].price == 10.0


class TestGetHistory:
    """Tests for MarketDataProvider.get_history()."""

    @pytest.mark.asyncio
    async def test_normalizes_frame(self, provider, monkeypatch):
        calls = []

        def hist(symbol, interval, period):
            calls.append((symbol, interval, period))
            return frame([10.0, 11.0, 12.0])

        monkeypatch.setattr(market_data, "_fetch_history_sync", hist)

        samples = await provider.get_history("aapl", interval="1d", range_="3mo")

        assert calls == [("AAPL", "1d", "3mo")]
        assert [s.close for s in samples] == [10.0, 11.0, 12.0]
        assert samples[2].previous_close == 11.0

    @pytest.mark.asyncio
    async def test_empty(self, provider, monkeypatch):
        monkeypatch.setattr(market_data, "_fetch_history_sync", lambda *args: None)
        assert await provider.get_history("AAPL") == []


class TestFetchQuoteSync:
    """Tests for the fast_info reader."""

    def test_missing_fields_become_none(self):
        info = {"last_price": 12.5, "previous_close": 12.0}
        with patch.object(market_data.yf, "Ticker") as ticker:
            ticker.return_value = MagicMock(fast_info=info)
            quote = _fetch_quote_sync("AAPL")

        ticker.assert_called_once_with("AAPL")
        assert quote["last_price"] == 12.5
        assert quote["day_high"] is None
        assert set(quote) == set(market_data.QUOTE_FIELDS)
