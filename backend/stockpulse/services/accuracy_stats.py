"""
Aggregate accuracy statistics over a user's graded predictions.

Percentages are taken over graded horizons only; ungraded horizons do not
count as misses.
"""

from typing import Any, Dict, List, Optional

import numpy as np
from sqlalchemy.orm import Session

from stockpulse.db.models import Prediction
from stockpulse.db.repositories import PredictionRepository
from stockpulse.domain.horizons import HORIZONS, Horizon


def _percent(values: List[bool]) -> float:
    if not values:
        return 0.0
    return round(float(np.mean(values)) * 100, 1)


def _camel(prefix: str) -> str:
    head, *rest = prefix.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _graded(records: List[Prediction], horizon: Horizon, field: str) -> List[Any]:
    column = horizon.column(field)
    return [getattr(r, column) for r in records if getattr(r, column) is not None]


class AccuracyStatistics:
    """Computes the figures behind the accuracy endpoints."""

    def __init__(self, db: Session):
        self.repo = PredictionRepository(db)

    def simple(self, user_id: str, symbol: Optional[str] = None) -> Dict[str, Any]:
        """
        Overall accuracy per horizon.

        Returns:
            {"oneDayAccuracy": 62.5, "oneWeekAccuracy": ..., "oneMonthAccuracy": ...,
             "totalPredictions": 12}
        """
        return self._overall(self.repo.list_for_user(user_id, symbol=symbol))

    @staticmethod
    def _overall(records: List[Prediction]) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            f"{_camel(h.prefix)}Accuracy": _percent(_graded(records, h, "accurate"))
            for h in HORIZONS
        }
        stats["totalPredictions"] = len(records)
        return stats

    def enhanced(self, user_id: str, symbol: Optional[str] = None) -> Dict[str, Any]:
        """Adds price and direction accuracy, graded counts and the average weighted score (percent)."""
        records = self.repo.list_for_user(user_id, symbol=symbol)
        stats = self._overall(records)

        weighted: List[float] = []
        for h in HORIZONS:
            name = _camel(h.prefix)
            stats[f"{name}PriceAccuracy"] = _percent(_graded(records, h, "price_accurate"))
            stats[f"{name}DirectionAccuracy"] = _percent(_graded(records, h, "direction_accurate"))
            stats[f"{name}Evaluated"] = len(_graded(records, h, "actual_price"))
            weighted.extend(_graded(records, h, "weighted_score"))

        stats["averageWeightedScore"] = round(float(np.mean(weighted)) * 100, 1) if weighted else 0.0
        return stats
