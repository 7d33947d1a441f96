"""
Technical indicator preprocessing for intraday price series.

Derives the indicators handed to the reasoning model. Every function here is
pure; low-data cases degrade to documented defaults instead of inventing values.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

import numpy as np

from stockpulse.utils.errors import InsufficientDataError

SMA_PERIOD = 20
RSI_PERIOD = 14
SUPPORT_RESISTANCE_WINDOW = 20
TREND_WINDOW = 10
NEUTRAL_RSI = 50.0


@dataclass(frozen=True)
class PriceSample:
    """One intraday observation."""
    timestamp: datetime
    price: float
    volume: Optional[int] = None


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicators computed from one price series."""
    sma20: Optional[float]
    rsi14: float
    support: float
    resistance: float
    trend_slope: float
    sample_count: int
    price_low: float
    price_high: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def simple_moving_average(prices: Sequence[float], period: int = SMA_PERIOD) -> Optional[float]:
    """Mean of the last ``period`` prices, or None when there are fewer."""
    if len(prices) < period:
        return None
    return float(np.mean(prices[-period:]))


def relative_strength_index(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """
    RSI over the last ``period`` pairwise deltas (fewer if the series is short).

    Returns 100 when there were gains but no losses and the neutral 50 when
    the window contains no movement at all.
    """
    if len(prices) < 2:
        return NEUTRAL_RSI

    deltas = np.diff(np.asarray(prices, dtype=float))[-period:]
    gains = deltas[deltas > 0]
    losses = -deltas[deltas < 0]

    if gains.size == 0 and losses.size == 0:
        return NEUTRAL_RSI

    avg_gain = gains.sum() / deltas.size
    avg_loss = losses.sum() / deltas.size

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


def support_resistance(prices: Sequence[float], window: int = SUPPORT_RESISTANCE_WINDOW):
    """Min and max of the last ``window`` prices."""
    recent = prices[-window:]
    return float(min(recent)), float(max(recent))


def trend_slope(prices: Sequence[float], window: int = TREND_WINDOW) -> float:
    """Ordinary least-squares slope of price against sample index."""
    recent = np.asarray(prices[-window:], dtype=float)
    n = recent.size
    if n < 2:
        return 0.0

    x = np.arange(n, dtype=float)
    x_centered = x - x.mean()
    denominator = float((x_centered ** 2).sum())
    return float((x_centered * (recent - recent.mean())).sum() / denominator)


def compute_indicators(samples: Sequence[PriceSample]) -> IndicatorSnapshot:
    """
    Compute the full indicator snapshot for an ordered price series.

    Raises:
        InsufficientDataError: if ``samples`` is empty
    """
    if not samples:
        raise InsufficientDataError("Cannot compute indicators from an empty price series")

    prices = [float(s.price) for s in samples]
    support, resistance = support_resistance(prices)

    return IndicatorSnapshot(
        sma20=simple_moving_average(prices),
        rsi14=relative_strength_index(prices),
        support=support,
        resistance=resistance,
        trend_slope=trend_slope(prices),
        sample_count=len(prices),
        price_low=min(prices),
        price_high=max(prices),
    )


def describe_rsi(rsi: float) -> str:
    if rsi > 70:
        return "overbought"
    if rsi < 30:
        return "oversold"
    return "neutral"
