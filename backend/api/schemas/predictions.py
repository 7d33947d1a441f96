"""Prediction schemas

Responses are camelCase on the wire to match the web client.
"""
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from stockpulse.db.models import Prediction
from stockpulse.domain.horizons import HORIZONS


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class GeneratePredictionRequest(CamelModel):
    symbol: str = Field(..., min_length=1, max_length=12)

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v or not all(c.isalnum() or c in ".-^" for c in v):
            raise ValueError("Symbol may only contain letters, digits, '.', '-' or '^'")
        return v


class HorizonPrediction(CamelModel):
    predicted_price: Optional[float] = None
    confidence: int = 0
    direction: Optional[str] = None
    reasoning: Optional[str] = None
    low: Optional[float] = None
    high: Optional[float] = None
    actual_price: Optional[float] = None
    accurate: Optional[bool] = None
    price_accurate: Optional[bool] = None
    direction_accurate: Optional[bool] = None
    weighted_score: Optional[float] = None


class PredictionResponse(CamelModel):
    id: int
    user_id: str
    symbol: str
    prediction_date: datetime
    prediction_day: date
    current_price: float

    one_day: HorizonPrediction
    one_week: HorizonPrediction
    one_month: HorizonPrediction

    rsi: Optional[float] = None
    sma20: Optional[float] = None
    support: Optional[float] = None
    resistance: Optional[float] = None
    trend_slope: Optional[float] = None
    trend: Optional[str] = None
    recommendation: Optional[str] = None
    data_limitations: Optional[Dict[str, bool]] = None

    last_evaluated_at: Optional[datetime] = None
    price_threshold: float
    generated_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: Prediction) -> "PredictionResponse":
        horizons = {}
        for h in HORIZONS:
            horizons[h.prefix] = HorizonPrediction(
                predicted_price=record.horizon_value(h, "price"),
                confidence=record.horizon_value(h, "confidence") or 0,
                direction=record.horizon_value(h, "direction"),
                reasoning=record.horizon_value(h, "reasoning"),
                low=record.horizon_value(h, "low"),
                high=record.horizon_value(h, "high"),
                actual_price=record.horizon_value(h, "actual_price"),
                accurate=record.horizon_value(h, "accurate"),
                price_accurate=record.horizon_value(h, "price_accurate"),
                direction_accurate=record.horizon_value(h, "direction_accurate"),
                weighted_score=record.horizon_value(h, "weighted_score"),
            )

        return cls(
            id=record.id,
            user_id=record.user_id,
            symbol=record.symbol,
            prediction_date=record.prediction_date,
            prediction_day=record.prediction_day,
            current_price=record.current_price,
            rsi=record.rsi,
            sma20=record.sma20,
            support=record.support,
            resistance=record.resistance,
            trend_slope=record.trend_slope,
            trend=record.trend,
            recommendation=record.recommendation,
            data_limitations=record.data_limitations,
            last_evaluated_at=record.last_evaluated_at,
            price_threshold=record.price_threshold,
            generated_at=record.generated_at,
            updated_at=record.updated_at,
            **horizons,
        )


def dump_prediction(record: Optional[Prediction]) -> Optional[Dict[str, Any]]:
    """JSON-ready camelCase dict, for error bodies built outside response_model."""
    if record is None:
        return None
    return PredictionResponse.from_record(record).model_dump(by_alias=True, mode="json")


class MarketStatusResponse(CamelModel):
    is_open: bool
    is_trading_day: bool
    reason: str
    market_day: date
    next_trading_day: Optional[date] = None
    closes_at: Optional[datetime] = None


class TodayPredictionResponse(CamelModel):
    has_prediction: bool
    prediction: Optional[PredictionResponse] = None
    is_weekend: Optional[bool] = None
    most_recent_prediction: Optional[PredictionResponse] = None
    market_status: MarketStatusResponse


class AccuracyStatsResponse(CamelModel):
    one_day_accuracy: float
    one_week_accuracy: float
    one_month_accuracy: float
    total_predictions: int


class EnhancedAccuracyStatsResponse(AccuracyStatsResponse):
    one_day_price_accuracy: float
    one_week_price_accuracy: float
    one_month_price_accuracy: float
    one_day_direction_accuracy: float
    one_week_direction_accuracy: float
    one_month_direction_accuracy: float
    one_day_evaluated: int
    one_week_evaluated: int
    one_month_evaluated: int
    average_weighted_score: float


class EvaluationSummaryResponse(CamelModel):
    as_of: date
    examined: int
    evaluated: int
    not_due: int
    deferred: int
    already_graded: int
    errors: int
    by_horizon: Dict[str, int]
