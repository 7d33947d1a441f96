"""
Tests for duplicate prevention: one prediction per user, symbol and market day,
including concurrent generation.
"""

import threading
from datetime import date

import pytest

from conftest import (
    TEST_USER,
    TRADING_DAY,
    TRADING_MOMENT,
    WEEKEND_MOMENT,
    FakeMarketData,
    FakeReasoningClient,
    make_prediction,
)
from stockpulse.db.models import Prediction
from stockpulse.db.session import SessionFactory
from stockpulse.services.prediction_generator import PredictionGenerator
from stockpulse.services.prediction_guard import PredictionGuard
from stockpulse.services.prediction_service import PredictionService
from stockpulse.utils.errors import MarketClosedError


def run_concurrently(count, target):
    """Run ``target(index)`` in ``count`` threads released together; return results and errors."""
    barrier = threading.Barrier(count)
    results, errors = [None] * count, []

    def worker(index):
        try:
            barrier.wait(timeout=10)
            results[index] = target(index)
        except Exception as e:  # collected and asserted on by the caller
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results, errors


class TestCheckExisting:

    def test_absent(self, db_session):
        check = PredictionGuard(db_session).check_existing(TEST_USER, "AAPL", date(2025, 11, 20))
        assert check.exists is False
        assert check.record is None

    def test_present(self, db_session):
        guard = PredictionGuard(db_session)
        created = guard.create_if_absent(make_prediction())
        check = guard.check_existing(TEST_USER, "aapl", date(2025, 11, 20))
        assert check.exists is True
        assert check.record.id == created.record.id


class TestCreateIfAbsent:

    def test_first_create(self, db_session):
        result = PredictionGuard(db_session).create_if_absent(make_prediction())
        assert result.created is True
        assert result.record.id is not None

    def test_conflict_returns_stored_record(self, db_session):
        guard = PredictionGuard(db_session)
        first = guard.create_if_absent(make_prediction())
        second = guard.create_if_absent(make_prediction(one_day_price=150.0))

        assert second.created is False
        assert second.record.id == first.record.id
        assert second.record.one_day_price == 204.0
        assert db_session.query(Prediction).count() == 1

    def test_concurrent_creates_yield_one_row(self):
        def create(_):
            with SessionFactory() as session:
                result = PredictionGuard(session).create_if_absent(make_prediction())
                return result.created, result.record.id

        results, errors = run_concurrently(5, create)

        assert errors == []
        assert sum(1 for created, _ in results if created) == 1
        assert len({record_id for _, record_id in results}) == 1
        with SessionFactory() as session:
            assert session.query(Prediction).count() == 1


class TestPredictionService:

    def make_service(self, session, reasoning=None, moment=TRADING_MOMENT, market_data=None):
        return PredictionService(
            db=session,
            market_data=market_data or FakeMarketData(),
            generator=PredictionGenerator(reasoning or FakeReasoningClient()),
            clock=lambda: moment,
        )

    def test_second_call_returns_existing_without_external_calls(self, db_session):
        market_data = FakeMarketData()
        reasoning = FakeReasoningClient()
        service = self.make_service(db_session, reasoning=reasoning, market_data=market_data)

        first = service.generate(TEST_USER, "aapl")
        second = service.generate(TEST_USER, "AAPL")

        assert first.created is True
        assert first.record.prediction_day == TRADING_DAY
        assert second.created is False
        assert second.record.id == first.record.id
        assert market_data.intraday_calls == 1
        assert len(reasoning.requests) == 1

    def test_weekend_refused_with_most_recent(self, db_session):
        stored = PredictionGuard(db_session).create_if_absent(make_prediction()).record
        service = self.make_service(db_session, moment=WEEKEND_MOMENT)

        with pytest.raises(MarketClosedError) as exc_info:
            service.generate(TEST_USER, "AAPL")

        assert exc_info.value.reason == "Saturday"
        assert exc_info.value.most_recent.id == stored.id

    def test_simultaneous_requests_store_one_prediction(self):
        reasoning = FakeReasoningClient(delay=0.2)

        def generate(_):
            with SessionFactory() as session:
                result = self.make_service(session, reasoning=reasoning).generate(TEST_USER, "AAPL")
                return result.created, result.record.id

        results, errors = run_concurrently(2, generate)

        assert errors == []
        assert sorted(created for created, _ in results) == [False, True]
        assert results[0][1] == results[1][1]
        with SessionFactory() as session:
            assert session.query(Prediction).filter(Prediction.symbol == "AAPL").count() == 1
