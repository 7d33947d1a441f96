"""FastAPI dependencies"""
from datetime import datetime
from typing import Callable, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from stockpulse.db.session import SessionFactory
from stockpulse.services.market_data import YahooMarketDataClient
from stockpulse.services.prediction_generator import PredictionGenerator
from stockpulse.services.prediction_service import PredictionService
from stockpulse.services.reasoning_client import OpenAIReasoningClient
from stockpulse.utils.datetime import utcnow


def get_db() -> Generator[Session, None, None]:
    """Get database session, one per request"""
    db = SessionFactory()
    try:
        yield db
    finally:
        db.close()


def get_market_data_client() -> YahooMarketDataClient:
    return YahooMarketDataClient()


def get_reasoning_client() -> OpenAIReasoningClient:
    return OpenAIReasoningClient()


def get_clock() -> Callable[[], datetime]:
    """Source of "now"; overridden in tests to pin the trading day"""
    return utcnow


def get_prediction_service(
    db: Session = Depends(get_db),
    market_data=Depends(get_market_data_client),
    reasoning_client=Depends(get_reasoning_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> PredictionService:
    return PredictionService(
        db=db,
        market_data=market_data,
        generator=PredictionGenerator(reasoning_client),
        clock=clock,
    )


def get_prediction_lookup(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> PredictionService:
    """Read-only service; does not need the market data or reasoning clients"""
    return PredictionService(db=db, clock=clock)
