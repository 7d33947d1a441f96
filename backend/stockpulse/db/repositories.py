"""
Repository pattern for data access.

Provides clean interfaces for database operations, abstracting SQLAlchemy details.
PredictionRepository is the prediction store; HistoricalPriceRepository reads
and records daily closes.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, desc, update, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from loguru import logger

from stockpulse.db.models import Prediction, HistoricalPrice
from stockpulse.domain.horizons import Horizon
from stockpulse.utils.datetime import utcnow
from stockpulse.utils.errors import ConflictError, DatabaseError


def _is_unique_violation(exc: IntegrityError) -> bool:
    """True for unique-constraint violations on Postgres and SQLite."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return "unique" in str(orig).lower()


class PredictionRepository:
    """Repository for Prediction operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, prediction_id: int) -> Optional[Prediction]:
        """Get prediction by ID."""
        return self.db.query(Prediction).filter(Prediction.id == prediction_id).first()

    def insert(self, prediction: Prediction) -> Prediction:
        """
        Insert a new prediction.

        Raises:
            ConflictError: if a prediction already exists for the same
                user, symbol and day
        """
        self.db.add(prediction)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            if _is_unique_violation(e):
                raise ConflictError(
                    f"Prediction for {prediction.symbol} on {prediction.prediction_day} already exists",
                    details={
                        "user_id": prediction.user_id,
                        "symbol": prediction.symbol,
                        "prediction_day": str(prediction.prediction_day),
                    },
                ) from e
            raise DatabaseError(f"Failed to insert prediction: {e.orig}") from e
        return prediction

    def get_by_user_symbol_day(self, user_id: str, symbol: str, day: date) -> Optional[Prediction]:
        """Get the prediction a user made for a symbol on a market day."""
        return (
            self.db.query(Prediction)
            .filter(
                Prediction.user_id == user_id,
                Prediction.symbol == symbol.upper(),
                Prediction.prediction_day == day,
            )
            .first()
        )

    def get_most_recent(self, user_id: str, symbol: str) -> Optional[Prediction]:
        """Most recent prediction for a symbol, used as the market-closed fallback."""
        return (
            self.db.query(Prediction)
            .filter(Prediction.user_id == user_id, Prediction.symbol == symbol.upper())
            .order_by(desc(Prediction.prediction_date))
            .first()
        )

    def list_matured_unevaluated(self, horizon: Horizon, as_of: date) -> List[Prediction]:
        """
        Predictions whose horizon has matured by ``as_of`` and is still ungraded.

        Horizons without a predicted price are excluded since there is nothing
        to grade.
        """
        latest_day = as_of - timedelta(days=horizon.offset_days)
        actual_col = getattr(Prediction, horizon.column("actual_price"))
        price_col = getattr(Prediction, horizon.column("price"))

        return (
            self.db.query(Prediction)
            .filter(
                and_(
                    Prediction.prediction_day <= latest_day,
                    actual_col.is_(None),
                    price_col.isnot(None),
                )
            )
            .order_by(Prediction.prediction_day, Prediction.id)
            .all()
        )

    def record_evaluation(
        self,
        prediction_id: int,
        horizon: Horizon,
        actual_price: float,
        accurate: bool,
        price_accurate: bool,
        direction_accurate: bool,
        weighted_score: float,
        evaluated_at: Optional[datetime] = None,
    ) -> bool:
        """
        Write the grade for one horizon.

        Only that horizon's columns are touched and only while its actual price
        is still NULL, so concurrent passes grading other horizons of the same
        row cannot clobber each other and a graded horizon is never rewritten.

        Returns:
            True if this call graded the horizon, False if it was already graded
        """
        evaluated_at = evaluated_at or utcnow()
        actual_col = getattr(Prediction, horizon.column("actual_price"))

        stmt = (
            update(Prediction)
            .where(Prediction.id == prediction_id, actual_col.is_(None))
            .values({
                horizon.column("actual_price"): actual_price,
                horizon.column("accurate"): accurate,
                horizon.column("price_accurate"): price_accurate,
                horizon.column("direction_accurate"): direction_accurate,
                horizon.column("weighted_score"): weighted_score,
                "last_evaluated_at": evaluated_at,
                "updated_at": evaluated_at,
            })
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def list_for_user(
        self,
        user_id: str,
        symbol: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Prediction]:
        """A user's predictions, newest first."""
        query = self.db.query(Prediction).filter(Prediction.user_id == user_id)

        if symbol:
            query = query.filter(Prediction.symbol == symbol.upper())

        query = query.order_by(desc(Prediction.prediction_date))

        if limit:
            query = query.limit(limit)

        return query.all()

    def delete(self, prediction_id: int, user_id: str) -> bool:
        """Delete one of the user's predictions. Returns False if nothing matched."""
        result = self.db.execute(
            delete(Prediction).where(Prediction.id == prediction_id, Prediction.user_id == user_id)
        )
        return result.rowcount > 0

    def distinct_symbols(self) -> List[str]:
        """Every symbol that has at least one prediction."""
        rows = self.db.execute(select(Prediction.symbol).distinct().order_by(Prediction.symbol))
        return [row[0] for row in rows]


class HistoricalPriceRepository:
    """Repository for recorded daily closes."""

    def __init__(self, db: Session):
        self.db = db

    def get_close(self, symbol: str, day: date) -> Optional[float]:
        """Close price for ``symbol`` on ``day`` if it has been recorded."""
        row = (
            self.db.query(HistoricalPrice.close_price)
            .filter(HistoricalPrice.symbol == symbol.upper(), HistoricalPrice.date == day)
            .first()
        )
        return float(row[0]) if row else None

    def latest_date(self, symbol: str) -> Optional[date]:
        row = (
            self.db.query(HistoricalPrice.date)
            .filter(HistoricalPrice.symbol == symbol.upper())
            .order_by(desc(HistoricalPrice.date))
            .first()
        )
        return row[0] if row else None

    def upsert(self, symbol: str, day: date, close_price: float, **fields) -> bool:
        """
        Insert or update the bar for ``symbol`` on ``day``.

        Returns:
            True if a new row was inserted, False if an existing row was updated
        """
        existing = (
            self.db.query(HistoricalPrice)
            .filter(HistoricalPrice.symbol == symbol.upper(), HistoricalPrice.date == day)
            .first()
        )

        if existing:
            existing.close_price = close_price
            for key, value in fields.items():
                if hasattr(existing, key):
                    setattr(existing, key, value)
            existing.recorded_at = utcnow()
            self.db.flush()
            return False

        self.db.add(HistoricalPrice(symbol=symbol.upper(), date=day, close_price=close_price, **fields))
        self.db.flush()
        logger.debug(f"Recorded close for {symbol.upper()} on {day}: {close_price}")
        return True
