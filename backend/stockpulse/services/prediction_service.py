"""
Request-level orchestration of prediction generation.

Flow: market calendar check, same-day lookup, one intraday fetch, indicator
preprocessing, one reasoning call, then the guarded insert. No transaction is
held open while the market data provider or the reasoning service is called.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session
from loguru import logger

from stockpulse.db.models import Prediction
from stockpulse.db.repositories import PredictionRepository
from stockpulse.domain.indicators import compute_indicators
from stockpulse.log_config import bind_log_context
from stockpulse.services.market_schedule import MarketStatus, get_market_status
from stockpulse.services.prediction_generator import PredictionGenerator
from stockpulse.services.prediction_guard import GuardResult, PredictionGuard
from stockpulse.utils.datetime import utcnow
from stockpulse.utils.errors import InsufficientDataError, MarketClosedError


@dataclass
class TodayStatus:
    """What the UI shows for a symbol today."""
    has_prediction: bool
    market_status: MarketStatus
    prediction: Optional[Prediction] = None
    is_weekend: Optional[bool] = None
    most_recent_prediction: Optional[Prediction] = None


class PredictionService:
    """Generates and looks up a user's daily predictions."""

    def __init__(
        self,
        db: Session,
        market_data=None,
        generator: Optional[PredictionGenerator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.market_data = market_data
        self.generator = generator
        self.clock = clock
        self.repo = PredictionRepository(db)
        self.guard = PredictionGuard(db)

    def today_status(self, user_id: str, symbol: str) -> TodayStatus:
        symbol = symbol.strip().upper()
        status = get_market_status(self.clock())
        record = self.repo.get_by_user_symbol_day(user_id, symbol, status.market_day)

        if record is not None:
            return TodayStatus(has_prediction=True, market_status=status, prediction=record)

        if not status.is_trading_day:
            return TodayStatus(
                has_prediction=False,
                market_status=status,
                is_weekend=status.reason in ("Saturday", "Sunday"),
                most_recent_prediction=self.repo.get_most_recent(user_id, symbol),
            )

        return TodayStatus(has_prediction=False, market_status=status)

    def generate(self, user_id: str, symbol: str) -> GuardResult:
        """
        Generate today's prediction for ``symbol`` unless one already exists.

        Raises:
            MarketClosedError: today is not a trading day (carries the most recent record)
            InsufficientDataError: the provider returned no intraday samples
            GenerationFailedError: the reasoning call failed or its answer was unusable
            MarketDataError: the market data provider failed
        """
        symbol = symbol.strip().upper()
        with bind_log_context(symbol=symbol, user_id=user_id):
            return self._generate(user_id, symbol)

    def _generate(self, user_id: str, symbol: str) -> GuardResult:
        moment = self.clock()
        status = get_market_status(moment)

        if not status.is_trading_day:
            logger.info(f"Refusing to generate {symbol} prediction on {status.market_day}: {status.reason}")
            raise MarketClosedError(
                status.reason,
                most_recent=self.repo.get_most_recent(user_id, symbol),
                details={"next_trading_day": str(status.next_trading_day)},
            )

        existing = self.guard.check_existing(user_id, symbol, status.market_day)
        # End the read transaction before the slow external calls
        self.db.commit()
        if existing.exists:
            logger.info(f"Prediction for {symbol} on {status.market_day} already exists (id={existing.record.id})")
            return GuardResult(created=False, record=existing.record)

        samples = self.market_data.get_intraday_series(symbol)
        if not samples:
            raise InsufficientDataError(
                f"No intraday price data available for {symbol}",
                details={"symbol": symbol},
            )

        indicators = compute_indicators(samples)
        current_price = samples[-1].price

        candidate = self.generator.generate(symbol, current_price, samples, indicators)
        candidate.generated_at = moment

        return self.guard.create_if_absent(
            candidate.to_record(user_id, prediction_day=status.market_day)
        )
