"""Tests for market series normalization."""

from datetime import datetime, timezone

import pandas as pd
import pytest

from arena.domain.price import (
    PriceSample,
    closes,
    iter_price_samples,
    market_data_from_samples,
    samples_from_chart,
    samples_from_dataframe,
)


T0 = 1767619800  # 2026-01-05 13:30 UTC
DAY = 86400


class TestIterPriceSamples:
    """Tests for iter_price_samples()."""

    def test_skips_gaps_and_carries_previous_close(self):
        samples = list(
            iter_price_samples(
                [T0, T0 + DAY, T0 + 2 * DAY],
                opens=[10.0, None, 11.0],
                highs=[10.5, None, 11.5],
                lows=[9.5, None, 10.5],
                closes=[10.0, None, 11.0],
                volumes=[100, None, 200],
            )
        )
        assert len(samples) == 2
        assert samples[0].previous_close == 10.0
        assert samples[1].previous_close == 10.0
        assert samples[1].change == pytest.approx(1.0)
        assert samples[1].change_percent == pytest.approx(10.0)

    def test_fills_missing_fields_from_close(self):
        (sample,) = iter_price_samples([T0], closes=[42.0])
        assert sample.open == sample.high == sample.low == 42.0
        assert sample.volume == 0

    def test_nan_close_is_a_gap(self):
        samples = list(iter_price_samples([T0, T0 + DAY], closes=[float("nan"), 5.0]))
        assert [s.close for s in samples] == [5.0]

    def test_timestamps_strictly_increase(self):
        samples = list(
            iter_price_samples([T0, T0, T0 - DAY, T0 + DAY], closes=[1.0, 2.0, 3.0, 4.0])
        )
        assert [s.close for s in samples] == [1.0, 4.0]
        assert samples[1].previous_close == 1.0

    def test_timestamps_are_utc(self):
        (sample,) = iter_price_samples([T0], closes=[1.0])
        assert sample.timestamp == datetime(2026, 1, 5, 13, 30, tzinfo=timezone.utc)

    def test_empty(self):
        assert list(iter_price_samples([])) == []


class TestSamplesFromChart:
    """Tests for samples_from_chart()."""

    def test_parses_chart_payload(self):
        payload = {
            "chart": {
                "result": [
                    {
                        "meta": {"regularMarketPrice": 12.0},
                        "timestamp": [T0, T0 + DAY],
                        "indicators": {
                            "quote": [
                                {
                                    "open": [10.0, 11.0],
                                    "high": [10.5, 12.5],
                                    "low": [9.0, 10.5],
                                    "close": [10.0, 12.0],
                                    "volume": [1000, 2000],
                                }
                            ]
                        },
                    }
                ]
            }
        }
        samples = list(samples_from_chart(payload))
        assert closes(samples) == [10.0, 12.0]
        assert samples[1].high == 12.5
        assert samples[1].volume == 2000

    @pytest.mark.parametrize(
        "payload",
        [None, {}, {"chart": {"result": []}}, {"chart": {"result": [{}]}}],
    )
    def test_malformed_payload_is_empty(self, payload):
        assert list(samples_from_chart(payload)) == []


class TestSamplesFromDataframe:
    """Tests for samples_from_dataframe()."""

    def test_parses_yfinance_frame(self):
        df = pd.DataFrame(
            {
                "Open": [10.0, 11.0, 12.0],
                "High": [10.5, 11.5, 12.5],
                "Low": [9.5, 10.5, 11.5],
                "Close": [10.0, float("nan"), 12.0],
                "Volume": [100, 200, 300],
            },
            index=pd.to_datetime(["2026-01-05", "2026-01-06", "2026-01-07"], utc=True),
        )
        samples = list(samples_from_dataframe(df))
        assert closes(samples) == [10.0, 12.0]
        assert samples[1].previous_close == 10.0
        assert samples[0].timestamp.tzinfo is not None

    def test_none_and_empty(self):
        assert list(samples_from_dataframe(None)) == []
        assert list(samples_from_dataframe(pd.DataFrame())) == []


class TestMarketDataFromSamples:
    """Tests for market_data_from_samples()."""

    def _samples(self):
        return [
            PriceSample(
                timestamp=datetime(2026, 1, 5, tzinfo=timezone.utc),
                open=99.0, high=101.0, low=98.0, close=100.0, volume=10, previous_close=100.0,
            ),
            PriceSample(
                timestamp=datetime(2026, 1, 6, tzinfo=timezone.utc),
                open=100.0, high=106.0, low=99.0, close=105.0, volume=20, previous_close=100.0,
            ),
        ]

    def test_live_quote_wins(self):
        data = market_data_from_samples(
            "aapl",
            self._samples(),
            {"last_price": 110.0, "previous_close": 100.0, "day_high": 111.0},
        )
        assert data.symbol == "AAPL"
        assert data.price == 110.0
        assert data.change == 10.0
        assert data.change_percent == 10.0
        assert data.high == 111.0
        # Missing quote fields fall back to the last sample
        assert data.low == 99.0
        assert data.volume == 20

    def test_falls_back_to_samples(self):
        data = market_data_from_samples("MSFT", self._samples())
        assert data.price == 105.0
        assert data.previous_close == 100.0
        assert data.change_percent == 5.0

    def test_chart_meta_keys(self):
        data = market_data_from_samples(
            "X", [], {"regularMarketPrice": 20.0, "chartPreviousClose": 16.0}
        )
        assert data.price == 20.0
        assert data.change_percent == 25.0
        assert data.high == data.low == data.open == 20.0

    def test_price_rounds_half_up(self):
        # round(2.675, 2) gives 2.67 on binary floats
        data = market_data_from_samples("X", [], {"last_price": 2.675, "previous_close": 2.675})
        assert data.price == 2.68
        assert data.change == 0.0

    def test_no_price_returns_none(self):
        assert market_data_from_samples("X", [], {"last_price": None}) is None
