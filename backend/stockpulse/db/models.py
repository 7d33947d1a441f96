"""
SQLAlchemy 2.0 database models for StockPulse.

Predictions carry one column block per horizon (one_day_*, one_week_*,
one_month_*). The daily dedup key is enforced by a unique constraint on
(user_id, symbol, prediction_day), not by application logic.
"""

from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from stockpulse.domain.horizons import HORIZONS, Horizon
from stockpulse.utils.datetime import utcnow

Base = declarative_base()


def _horizon_checks():
    checks = []
    for h in HORIZONS:
        checks.append(CheckConstraint(
            f"{h.prefix}_confidence >= 0 AND {h.prefix}_confidence <= 100",
            name=f"ck_predictions_{h.prefix}_confidence_range",
        ))
        checks.append(CheckConstraint(
            f"{h.prefix}_price IS NOT NULL OR {h.prefix}_confidence = 0",
            name=f"ck_predictions_{h.prefix}_null_price_zero_confidence",
        ))
    return tuple(checks)


class Prediction(Base):
    """Multi-horizon price prediction for one user, symbol and trading day."""

    __tablename__ = "predictions"
    __table_args__ = (
        UniqueConstraint("user_id", "symbol", "prediction_day", name="uix_prediction_user_symbol_day"),
        Index("ix_predictions_symbol_date", "symbol", "prediction_date"),
        Index("ix_predictions_last_evaluated", "last_evaluated_at"),
    ) + _horizon_checks()

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    symbol = Column(String, nullable=False, index=True)
    prediction_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    prediction_day = Column(Date, nullable=False, index=True)  # market-timezone calendar day
    current_price = Column(Float, nullable=False)

    # 1-day prediction
    one_day_price = Column(Float, nullable=True)
    one_day_confidence = Column(Integer, nullable=False, default=0)
    one_day_direction = Column(String(10), nullable=True)
    one_day_reasoning = Column(Text, nullable=True)
    one_day_low = Column(Float, nullable=True)
    one_day_high = Column(Float, nullable=True)
    one_day_actual_price = Column(Float, nullable=True)
    one_day_accurate = Column(Boolean, nullable=True, index=True)
    one_day_price_accurate = Column(Boolean, nullable=True)
    one_day_direction_accurate = Column(Boolean, nullable=True)
    one_day_weighted_score = Column(Float, nullable=True)

    # 1-week prediction
    one_week_price = Column(Float, nullable=True)
    one_week_confidence = Column(Integer, nullable=False, default=0)
    one_week_direction = Column(String(10), nullable=True)
    one_week_reasoning = Column(Text, nullable=True)
    one_week_low = Column(Float, nullable=True)
    one_week_high = Column(Float, nullable=True)
    one_week_actual_price = Column(Float, nullable=True)
    one_week_accurate = Column(Boolean, nullable=True, index=True)
    one_week_price_accurate = Column(Boolean, nullable=True)
    one_week_direction_accurate = Column(Boolean, nullable=True)
    one_week_weighted_score = Column(Float, nullable=True)

    # 1-month prediction
    one_month_price = Column(Float, nullable=True)
    one_month_confidence = Column(Integer, nullable=False, default=0)
    one_month_direction = Column(String(10), nullable=True)
    one_month_reasoning = Column(Text, nullable=True)
    one_month_low = Column(Float, nullable=True)
    one_month_high = Column(Float, nullable=True)
    one_month_actual_price = Column(Float, nullable=True)
    one_month_accurate = Column(Boolean, nullable=True, index=True)
    one_month_price_accurate = Column(Boolean, nullable=True)
    one_month_direction_accurate = Column(Boolean, nullable=True)
    one_month_weighted_score = Column(Float, nullable=True)

    # Technical context at generation time
    rsi = Column(Float, nullable=True)
    sma20 = Column(Float, nullable=True)
    support = Column(Float, nullable=True)
    resistance = Column(Float, nullable=True)
    trend_slope = Column(Float, nullable=True)
    trend = Column(String(10), nullable=True)  # bullish, bearish, neutral
    recommendation = Column(String(10), nullable=True)  # buy, sell, hold
    data_limitations = Column(JSON, nullable=True)

    # Evaluation metadata
    last_evaluated_at = Column(DateTime, nullable=True)
    price_threshold = Column(Float, nullable=False, default=5.0)  # percent

    generated_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def horizon_value(self, horizon: Horizon, field: str) -> Any:
        """Read one per-horizon field, e.g. ``horizon_value(ONE_DAY, "price")``."""
        return getattr(self, horizon.column(field))

    def __repr__(self) -> str:
        return (
            f"<Prediction(id={self.id}, user_id={self.user_id}, symbol={self.symbol}, "
            f"day={self.prediction_day})>"
        )


class HistoricalPrice(Base):
    """Daily close recorded for a symbol; source of truth for grading."""

    __tablename__ = "historical_prices"
    __table_args__ = (
        UniqueConstraint("symbol", "date", name="uq_historical_prices_symbol_date"),
        Index("ix_historical_prices_symbol", "symbol"),
        Index("ix_historical_prices_date", "date"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    symbol = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    close_price = Column(Float, nullable=False)
    open_price = Column(Float, nullable=True)
    high_price = Column(Float, nullable=True)
    low_price = Column(Float, nullable=True)
    volume = Column(Integer, nullable=True)
    change = Column(Float, nullable=True)
    change_percent = Column(Float, nullable=True)
    source = Column(String, default="yahoo")
    recorded_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<HistoricalPrice(symbol={self.symbol}, date={self.date}, close={self.close_price})>"
