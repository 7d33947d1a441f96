"""
Unit tests for the technical indicator preprocessor.
"""

import pytest

from conftest import make_samples
from stockpulse.domain.indicators import (
    NEUTRAL_RSI,
    compute_indicators,
    describe_rsi,
    relative_strength_index,
    simple_moving_average,
    support_resistance,
    trend_slope,
)
from stockpulse.utils.errors import InsufficientDataError


class TestComputeIndicators:
    """Full snapshot over short and long series."""

    def test_five_point_series(self):
        """Short series: no SMA, RSI over the available deltas, min/max of all points."""
        snapshot = compute_indicators(make_samples([10.0, 12.0, 11.0, 13.0, 12.0]))

        assert snapshot.sma20 is None
        # gains 2+2, losses 1+1 over 4 deltas -> RS = 2
        assert snapshot.rsi14 == pytest.approx(100 - 100 / 3)
        assert snapshot.support == 10.0
        assert snapshot.resistance == 13.0
        assert snapshot.trend_slope == pytest.approx(0.5)
        assert snapshot.sample_count == 5

    def test_long_series_uses_trailing_windows(self):
        prices = [float(p) for p in range(1, 26)]
        snapshot = compute_indicators(make_samples(prices))

        assert snapshot.sma20 == pytest.approx(sum(range(6, 26)) / 20)
        assert snapshot.support == 6.0
        assert snapshot.resistance == 25.0
        assert snapshot.trend_slope == pytest.approx(1.0)
        assert snapshot.rsi14 == 100.0
        assert snapshot.price_low == 1.0
        assert snapshot.price_high == 25.0

    def test_single_sample(self):
        snapshot = compute_indicators(make_samples([42.0]))

        assert snapshot.sma20 is None
        assert snapshot.rsi14 == NEUTRAL_RSI
        assert snapshot.trend_slope == 0.0
        assert snapshot.support == snapshot.resistance == 42.0

    def test_empty_series_raises(self):
        with pytest.raises(InsufficientDataError):
            compute_indicators([])

    def test_to_dict_round_trips_fields(self):
        snapshot = compute_indicators(make_samples([1.0, 2.0]))
        data = snapshot.to_dict()
        assert set(data) == {
            "sma20", "rsi14", "support", "resistance", "trend_slope",
            "sample_count", "price_low", "price_high",
        }


class TestRelativeStrengthIndex:

    def test_no_movement_is_neutral(self):
        assert relative_strength_index([5.0, 5.0, 5.0]) == NEUTRAL_RSI

    def test_only_losses_is_zero(self):
        assert relative_strength_index([5.0, 4.0, 3.0]) == pytest.approx(0.0)

    def test_balanced_moves(self):
        assert relative_strength_index([10.0, 11.0, 10.0]) == pytest.approx(50.0)

    def test_window_ignores_older_deltas(self):
        """A crash before the last 14 deltas does not affect the result."""
        prices = [100.0, 50.0] + [50.0 + i for i in range(1, 15)]
        assert relative_strength_index(prices) == 100.0


class TestSmallHelpers:

    def test_sma_requires_full_period(self):
        assert simple_moving_average([1.0] * 19) is None
        assert simple_moving_average([2.0] * 20) == 2.0

    def test_support_resistance_uses_last_window(self):
        prices = [1.0] + [5.0] * 20
        assert support_resistance(prices) == (5.0, 5.0)

    def test_trend_slope_on_falling_series(self):
        assert trend_slope([10.0, 8.0, 6.0]) == pytest.approx(-2.0)

    @pytest.mark.parametrize("rsi,label", [(75.0, "overbought"), (25.0, "oversold"), (50.0, "neutral")])
    def test_describe_rsi(self, rsi, label):
        assert describe_rsi(rsi) == label
