"""
Shared pytest fixtures for the StockPulse test suite.

Points the application at a throwaway SQLite database before anything from
the package is imported, and provides fakes for the market data provider and
the reasoning service.
"""

import json
import os
import sys
import tempfile
import time
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

_TEST_DB = os.path.join(tempfile.gettempdir(), f"stockpulse_test_{os.getpid()}.db")

os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["LOG_FILE"] = ""
os.environ["LOG_FORMAT"] = "text"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["OPENAI_API_KEY"] = "test-openai-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from api.dependencies import get_clock, get_market_data_client, get_reasoning_client
from api.main import app
from api.utils.auth import create_access_token
from stockpulse.db.models import HistoricalPrice, Prediction
from stockpulse.db.session import SessionFactory, engine, init_db
from stockpulse.domain.indicators import PriceSample

# Friday 2025-11-21, 10:00 in New York
TRADING_MOMENT = datetime(2025, 11, 21, 15, 0)
TRADING_DAY = date(2025, 11, 21)
# Saturday 2025-11-22, 10:00 in New York
WEEKEND_MOMENT = datetime(2025, 11, 22, 15, 0)

TEST_USER = "user-1"
OTHER_USER = "user-2"


@pytest.fixture(scope="session", autouse=True)
def test_database():
    init_db()
    yield
    engine.dispose()
    if os.path.exists(_TEST_DB):
        os.remove(_TEST_DB)


@pytest.fixture(autouse=True)
def clean_tables():
    """Every test starts with empty tables."""
    def _wipe():
        with SessionFactory() as session:
            session.execute(delete(Prediction))
            session.execute(delete(HistoricalPrice))
            session.commit()

    _wipe()
    yield
    _wipe()


@pytest.fixture
def db_session():
    session = SessionFactory()
    try:
        yield session
    finally:
        session.close()


def make_samples(prices: List[float], start: datetime = datetime(2025, 11, 21, 14, 30)) -> List[PriceSample]:
    """Five-minute samples starting at ``start`` (naive UTC)."""
    return [
        PriceSample(timestamp=start + timedelta(minutes=5 * i), price=p, volume=1000 + i)
        for i, p in enumerate(prices)
    ]


def flat_response(
    one_day: Optional[float] = 204.0,
    one_week: Optional[float] = 206.0,
    one_month: Optional[float] = 210.0,
    confidence: int = 70,
) -> Dict:
    predictions = {}
    for key, price in (("1d", one_day), ("1w", one_week), ("1m", one_month)):
        if price is not None:
            predictions[key] = {
                "point": price,
                "low": round(price * 0.98, 2),
                "high": round(price * 1.02, 2),
                "confidence": confidence,
            }
    return {
        "predictions": predictions,
        "technical": {"trend": "up", "support_levels": [198.0], "resistance_levels": [205.0]},
        "recommendation": "buy",
    }


class FakeReasoningClient:
    """Stands in for the OpenAI client; returns a canned response."""

    def __init__(self, response=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.response = response if response is not None else flat_response()
        self.error = error
        self.delay = delay
        self.requests: List[Dict] = []

    def complete(self, request: Dict) -> str:
        self.requests.append(request)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


class FakeMarketData:
    """Stands in for Yahoo Finance."""

    def __init__(self, samples: Optional[List[PriceSample]] = None):
        self.samples = samples if samples is not None else make_samples([199.0 + 0.05 * i for i in range(30)] + [200.0])
        self.intraday_calls = 0

    def get_intraday_series(self, symbol: str, as_of: Optional[date] = None) -> List[PriceSample]:
        self.intraday_calls += 1
        return list(self.samples)


class FakePriceSource:
    """Close-price lookup keyed by (symbol, date) that records every lookup."""

    def __init__(self, closes: Optional[Dict] = None):
        self.closes = closes or {}
        self.lookups: List = []

    def get_close_price(self, symbol: str, day: date) -> Optional[float]:
        self.lookups.append((symbol, day))
        return self.closes.get((symbol.upper(), day))


def make_prediction(**overrides) -> Prediction:
    """A stored-shape prediction made on Thursday 2025-11-20 at a price of 200."""
    values = dict(
        user_id=TEST_USER,
        symbol="AAPL",
        prediction_date=datetime(2025, 11, 20, 15, 0),
        prediction_day=date(2025, 11, 20),
        current_price=200.0,
        one_day_price=204.0,
        one_day_confidence=80,
        one_day_direction="up",
        one_week_price=206.0,
        one_week_confidence=60,
        one_week_direction="up",
        one_month_price=210.0,
        one_month_confidence=40,
        one_month_direction="up",
        rsi=55.0,
        trend="bullish",
        recommendation="buy",
        price_threshold=5.0,
    )
    values.update(overrides)
    return Prediction(**values)


@pytest.fixture
def fake_market_data():
    return FakeMarketData()


@pytest.fixture
def fake_reasoning():
    return FakeReasoningClient()


@pytest.fixture
def clock_moment():
    """Override per test to move "now"."""
    return {"now": TRADING_MOMENT}


@pytest.fixture
def client(fake_market_data, fake_reasoning, clock_moment):
    """Test client with external services faked and the clock pinned."""
    app.dependency_overrides[get_market_data_client] = lambda: fake_market_data
    app.dependency_overrides[get_reasoning_client] = lambda: fake_reasoning
    app.dependency_overrides[get_clock] = lambda: (lambda: clock_moment["now"])

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = create_access_token({"sub": TEST_USER})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers():
    token = create_access_token({"sub": OTHER_USER})
    return {"Authorization": f"Bearer {token}"}
