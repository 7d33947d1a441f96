"""
Accuracy evaluator for matured prediction horizons.

Grading rubric for one horizon:

* price accurate: |actual - predicted| / actual <= threshold (percent of actual)
* direction accurate: predicted direction equals the actual move from the
  baseline price, with moves inside the sideways band counted as sideways
* accurate: both of the above
* weighted score: confidence / 100 when accurate, otherwise 0

A horizon is read on the first trading day on or after its calendar target.
Closes come from the recorded historical prices; when one is missing the
horizon is left for a later pass. Writes are guarded on the horizon's actual
price being NULL, so re-running a pass never changes a graded horizon.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from stockpulse.config import settings
from stockpulse.db.models import Prediction
from stockpulse.db.repositories import PredictionRepository
from stockpulse.domain.horizons import HORIZONS, Horizon, direction_from_change
from stockpulse.log_config import bind_log_context, get_logger
from stockpulse.services.market_data import HistoricalPriceProvider
from stockpulse.services.market_schedule import resolve_target_date
from stockpulse.utils.datetime import market_date, utcnow
from stockpulse.utils.errors import EvaluationDataUnavailableError

log = get_logger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    actual_price: float
    actual_direction: str
    price_accurate: bool
    direction_accurate: bool
    accurate: bool
    weighted_score: float


def price_within_threshold(predicted_price: float, actual_price: float, threshold_percent: float) -> bool:
    """
    Examples:
        >>> price_within_threshold(204.0, 205.0, 5.0)
        True
        >>> price_within_threshold(204.0, 150.0, 5.0)
        False
    """
    return abs(actual_price - predicted_price) / actual_price <= threshold_percent / 100


def evaluate_prediction(
    predicted_price: float,
    predicted_direction: Optional[str],
    current_price: float,
    actual_price: float,
    confidence: int,
    threshold_percent: float,
    band_percent: float,
) -> EvaluationResult:
    """Grade one horizon. Pure."""
    actual_direction = direction_from_change(current_price, actual_price, band_percent)

    price_accurate = price_within_threshold(predicted_price, actual_price, threshold_percent)
    direction_accurate = predicted_direction == actual_direction
    accurate = price_accurate and direction_accurate

    weighted_score = (1.0 if accurate else 0.0) * (confidence or 0) / 100

    return EvaluationResult(
        actual_price=actual_price,
        actual_direction=actual_direction,
        price_accurate=price_accurate,
        direction_accurate=direction_accurate,
        accurate=accurate,
        weighted_score=weighted_score,
    )


@dataclass
class EvaluationSummary:
    """Counts for one evaluation pass."""
    as_of: date
    examined: int = 0
    evaluated: int = 0
    not_due: int = 0
    deferred: int = 0
    already_graded: int = 0
    errors: int = 0
    by_horizon: Dict[str, int] = field(default_factory=lambda: {h.key: 0 for h in HORIZONS})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "examined": self.examined,
            "evaluated": self.evaluated,
            "not_due": self.not_due,
            "deferred": self.deferred,
            "already_graded": self.already_graded,
            "errors": self.errors,
            "by_horizon": dict(self.by_horizon),
        }


class AccuracyEvaluator:
    """Grades every matured, ungraded horizon once."""

    def __init__(
        self,
        db: Session,
        price_source=None,
        band_percent: Optional[float] = None,
    ):
        self.db = db
        self.repo = PredictionRepository(db)
        self.price_source = price_source or HistoricalPriceProvider(db)
        self.band_percent = band_percent if band_percent is not None else settings.sideways_band_percent

    def target_date(self, record: Prediction, horizon: Horizon) -> date:
        return resolve_target_date(horizon.target_date(record.prediction_day))

    def run(self, as_of: Optional[date] = None, horizons: Iterable[Horizon] = HORIZONS) -> EvaluationSummary:
        """
        Grade everything that has matured by ``as_of`` (default: today in market time).

        Failures are counted and logged per horizon; the pass itself never raises
        for a single bad row.
        """
        as_of = as_of or market_date()
        summary = EvaluationSummary(as_of=as_of)
        log.info("evaluation_pass_started", as_of=as_of.isoformat())

        for horizon in horizons:
            for record in self.repo.list_matured_unevaluated(horizon, as_of):
                summary.examined += 1
                with bind_log_context(prediction_id=record.id, symbol=record.symbol, horizon=horizon.key):
                    self._grade_into(summary, record, horizon, as_of)

        log.info("evaluation_pass_finished", **summary.to_dict())
        return summary

    def _grade_into(self, summary: EvaluationSummary, record: Prediction, horizon: Horizon, as_of: date) -> None:
        try:
            outcome = self.evaluate_horizon(record, horizon, as_of)
        except EvaluationDataUnavailableError as e:
            summary.deferred += 1
            log.info("evaluation_deferred", reason=e.message)
            return
        except Exception as e:
            self.db.rollback()
            summary.errors += 1
            log.error("evaluation_failed", error=str(e), exc_info=True)
            return

        if outcome == "graded":
            summary.evaluated += 1
            summary.by_horizon[horizon.key] += 1
        elif outcome == "not_due":
            summary.not_due += 1
        else:
            summary.already_graded += 1

    def evaluate_horizon(self, record: Prediction, horizon: Horizon, as_of: date) -> str:
        """
        Grade one horizon of ``record``.

        Returns "graded", "not_due" (target trading day is after ``as_of``) or
        "already_graded" (another pass wrote it first).

        Raises:
            EvaluationDataUnavailableError: no usable close for the target day
        """
        target = self.target_date(record, horizon)
        if target > as_of:
            return "not_due"

        actual_price = self.price_source.get_close_price(record.symbol, target)
        if actual_price is None or actual_price <= 0:
            raise EvaluationDataUnavailableError(
                f"No close price for {record.symbol} on {target}",
                details={"symbol": record.symbol, "date": target.isoformat()},
            )

        result = evaluate_prediction(
            predicted_price=record.horizon_value(horizon, "price"),
            predicted_direction=record.horizon_value(horizon, "direction"),
            current_price=record.current_price,
            actual_price=actual_price,
            confidence=record.horizon_value(horizon, "confidence"),
            threshold_percent=record.price_threshold or settings.default_price_threshold,
            band_percent=self.band_percent,
        )

        graded = self.repo.record_evaluation(
            record.id,
            horizon,
            actual_price=result.actual_price,
            accurate=result.accurate,
            price_accurate=result.price_accurate,
            direction_accurate=result.direction_accurate,
            weighted_score=result.weighted_score,
            evaluated_at=utcnow(),
        )
        self.db.commit()

        if not graded:
            return "already_graded"

        log.info(
            "horizon_evaluated",
            target_date=target.isoformat(),
            actual_price=result.actual_price,
            actual_direction=result.actual_direction,
            price_accurate=result.price_accurate,
            direction_accurate=result.direction_accurate,
            accurate=result.accurate,
            weighted_score=result.weighted_score,
        )
        return "graded"
