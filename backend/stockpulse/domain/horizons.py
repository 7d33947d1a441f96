"""Prediction horizons and the column prefix each one maps to."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Horizon:
    key: str
    prefix: str
    offset_days: int
    label: str

    def target_date(self, prediction_day: date) -> date:
        """Calendar date this horizon matures on (before trading-day adjustment)."""
        return prediction_day + timedelta(days=self.offset_days)

    def column(self, field: str) -> str:
        return f"{self.prefix}_{field}"


ONE_DAY = Horizon(key="1d", prefix="one_day", offset_days=1, label="1 day")
ONE_WEEK = Horizon(key="1w", prefix="one_week", offset_days=7, label="1 week")
ONE_MONTH = Horizon(key="1m", prefix="one_month", offset_days=30, label="1 month")

HORIZONS: Tuple[Horizon, ...] = (ONE_DAY, ONE_WEEK, ONE_MONTH)

DIRECTIONS = ("up", "down", "sideways")

_ALIASES: Dict[str, Horizon] = {}
for _h in HORIZONS:
    for _alias in (_h.key, _h.prefix, _h.label, _h.label.replace(" ", "-"), _h.label.replace(" ", "_")):
        _ALIASES[_alias] = _h
_ALIASES.update({
    "1day": ONE_DAY, "day": ONE_DAY, "daily": ONE_DAY,
    "1week": ONE_WEEK, "week": ONE_WEEK, "weekly": ONE_WEEK, "7d": ONE_WEEK,
    "1month": ONE_MONTH, "month": ONE_MONTH, "monthly": ONE_MONTH, "30d": ONE_MONTH,
})


def get_horizon(name: str) -> Horizon:
    """Look up a horizon by key ('1d'), prefix ('one_day') or label ('1 day')."""
    horizon = find_horizon(name)
    if horizon is None:
        raise ValueError(f"Unknown horizon: {name!r}")
    return horizon


def find_horizon(name: Optional[str]) -> Optional[Horizon]:
    if not name:
        return None
    return _ALIASES.get(str(name).strip().lower())


def direction_from_change(reference: float, value: float, band_percent: float) -> str:
    """
    Classify a move from ``reference`` to ``value``.

    Changes within +/- ``band_percent`` percent are sideways. Used both when a
    prediction lacks an explicit direction and when grading the actual move.
    """
    change_percent = (value - reference) / reference * 100
    if change_percent > band_percent:
        return "up"
    if change_percent < -band_percent:
        return "down"
    return "sideways"


def normalize_direction(value: Optional[str]) -> Optional[str]:
    """Map model vocabulary (bullish, neutral, ...) onto up/down/sideways."""
    if not value:
        return None
    v = str(value).strip().lower()
    if v in ("up", "bullish", "buy", "rise", "higher"):
        return "up"
    if v in ("down", "bearish", "sell", "fall", "lower"):
        return "down"
    if v in ("sideways", "neutral", "flat", "hold"):
        return "sideways"
    return None
