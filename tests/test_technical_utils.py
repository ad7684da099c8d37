"""Tests for the indicator helpers."""

import pytest

from arena.core.technical_utils import momentum, rsi, sma


class TestSma:
    """Tests for sma()."""

    def test_trailing_means(self):
        assert sma([1.0, 2.0, 3.0, 4.0, 5.0], 3) == [2.0, 3.0, 4.0]

    def test_period_equal_to_length(self):
        assert sma([2.0, 4.0], 2) == [3.0]

    def test_short_input_is_empty(self):
        assert sma([1.0, 2.0], 3) == []

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            sma([1.0, 2.0], 0)


class TestRsi:
    """Tests for rsi()."""

    def test_needs_period_plus_one_closes(self):
        assert rsi([1.0] * 14, 14) == []
        assert len(rsi([1.0] * 15, 14)) == 1

    def test_no_losses_pins_at_100(self):
        values = rsi([float(i) for i in range(1, 31)], 14)
        assert values
        assert all(v == 100.0 for v in values)

    def test_only_losses_is_zero(self):
        values = rsi([float(i) for i in range(30, 0, -1)], 14)
        assert values[-1] == 0.0

    def test_balanced_moves_are_50(self):
        """Equal average gain and loss gives RSI 50."""
        assert rsi([1.0, 2.0, 1.0], 2) == [50.0]

    def test_values_are_bounded(self):
        closes = [100, 102, 99, 104, 101, 97, 103, 108, 104, 100, 99, 105, 110, 107, 103, 106]
        for value in rsi([float(c) for c in closes], 5):
            assert 0.0 <= value <= 100.0

    def test_wilder_smoothing(self):
        # Seed: gains [1, 0] losses [0, 1] -> 0.5 / 0.5
        # Next delta +2: gain (0.5 + 2) / 2 = 1.25, loss 0.5 / 2 = 0.25 -> RS 5
        values = rsi([1.0, 2.0, 1.0, 3.0], 2)
        assert values[0] == 50.0
        assert values[1] == pytest.approx(100 - 100 / 6)


class TestMomentum:
    """Tests for momentum()."""

    def test_difference_over_lookback(self):
        assert momentum([1.0, 2.0, 4.0, 7.0], 2) == 5.0

    def test_insufficient_data(self):
        assert momentum([1.0, 2.0], 2) is None

    def test_negative(self):
        assert momentum([10.0, 9.0, 8.0], 2) == -2.0
