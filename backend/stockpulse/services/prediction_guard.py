"""
Duplicate-generation guard.

At most one prediction exists per (user, symbol, market day). The lookup in
check_existing only saves work in the common case; the unique constraint on
the predictions table decides races, and create_if_absent turns a lost race
into the "already exists" result.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session
from loguru import logger

from stockpulse.db.models import Prediction
from stockpulse.db.repositories import PredictionRepository
from stockpulse.utils.datetime import market_date
from stockpulse.utils.errors import ConflictError, DatabaseError


@dataclass
class ExistingCheck:
    exists: bool
    record: Optional[Prediction] = None


@dataclass
class GuardResult:
    created: bool
    record: Prediction


class PredictionGuard:
    """Makes prediction creation idempotent per user, symbol and day."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PredictionRepository(db)

    def check_existing(self, user_id: str, symbol: str, day: Optional[date] = None) -> ExistingCheck:
        """Look up the record for ``day`` (default: today in market time). Read-only."""
        record = self.repo.get_by_user_symbol_day(user_id, symbol, day or market_date())
        return ExistingCheck(exists=record is not None, record=record)

    def create_if_absent(self, candidate: Prediction) -> GuardResult:
        """
        Persist ``candidate`` unless a record for its key already exists.

        The insert is committed immediately so concurrent callers see it. On a
        uniqueness conflict the stored record is returned with ``created=False``.
        """
        try:
            record = self.repo.insert(candidate)
            self.db.commit()
        except ConflictError:
            logger.info(
                f"Prediction for {candidate.user_id}/{candidate.symbol} on "
                f"{candidate.prediction_day} already exists, returning stored record"
            )
            existing = self.repo.get_by_user_symbol_day(
                candidate.user_id, candidate.symbol, candidate.prediction_day
            )
            if existing is None:
                # Conflicting row vanished between the failed insert and the re-read
                raise DatabaseError(
                    "Prediction conflict reported but no stored record found",
                    details={"symbol": candidate.symbol, "prediction_day": str(candidate.prediction_day)},
                )
            return GuardResult(created=False, record=existing)

        logger.info(f"Stored prediction {record.id} for {record.symbol} on {record.prediction_day}")
        return GuardResult(created=True, record=record)
