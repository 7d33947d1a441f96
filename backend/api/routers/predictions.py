"""Predictions router"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from loguru import logger
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import get_db, get_prediction_lookup, get_prediction_service
from api.ratelimit import limiter
from api.schemas.predictions import (
    AccuracyStatsResponse,
    EnhancedAccuracyStatsResponse,
    EvaluationSummaryResponse,
    GeneratePredictionRequest,
    PredictionResponse,
    TodayPredictionResponse,
    MarketStatusResponse,
    dump_prediction,
)
from api.utils.auth import get_current_user_id
from api.utils.exceptions import (
    DataUnavailableException,
    GenerationFailedException,
    MarketClosedException,
    PredictionExistsException,
    ResourceNotFoundException,
)
from stockpulse.db.repositories import PredictionRepository
from stockpulse.services.accuracy_evaluator import AccuracyEvaluator
from stockpulse.services.accuracy_stats import AccuracyStatistics
from stockpulse.services.prediction_service import PredictionService
from stockpulse.utils.errors import (
    ExternalServiceError,
    InsufficientDataError,
    MarketClosedError,
)

router = APIRouter(prefix="/predictions", tags=["predictions"])


@router.get("", response_model=list[PredictionResponse])
def list_predictions(
    symbol: Optional[str] = Query(None, max_length=12),
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's predictions, newest first"""
    records = PredictionRepository(db).list_for_user(user_id, symbol=symbol, limit=limit)
    return [PredictionResponse.from_record(r) for r in records]


@router.get("/accuracy", response_model=AccuracyStatsResponse)
def get_accuracy(
    symbol: Optional[str] = Query(None, max_length=12),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Overall accuracy per horizon over the caller's graded predictions"""
    return AccuracyStatsResponse.model_validate(AccuracyStatistics(db).simple(user_id, symbol=symbol))


@router.get("/accuracy/enhanced", response_model=EnhancedAccuracyStatsResponse)
def get_enhanced_accuracy(
    symbol: Optional[str] = Query(None, max_length=12),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Price, direction and confidence-weighted accuracy per horizon"""
    return EnhancedAccuracyStatsResponse.model_validate(AccuracyStatistics(db).enhanced(user_id, symbol=symbol))


@router.get("/{symbol}/today", response_model=TodayPredictionResponse)
def get_today_prediction(
    symbol: str,
    user_id: str = Depends(get_current_user_id),
    service: PredictionService = Depends(get_prediction_lookup),
):
    """
    Today's prediction for a symbol.

    On weekends and holidays the most recent prediction is returned instead
    so the client can show it alongside the market status.
    """
    today = service.today_status(user_id, symbol)
    return TodayPredictionResponse(
        has_prediction=today.has_prediction,
        prediction=PredictionResponse.from_record(today.prediction) if today.prediction else None,
        is_weekend=today.is_weekend,
        most_recent_prediction=(
            PredictionResponse.from_record(today.most_recent_prediction)
            if today.most_recent_prediction else None
        ),
        market_status=MarketStatusResponse.model_validate(today.market_status),
    )


@router.post("/generate", response_model=PredictionResponse)
@limiter.limit(settings.GENERATE_RATE_LIMIT)
def generate_prediction(
    request: Request,
    payload: GeneratePredictionRequest,
    user_id: str = Depends(get_current_user_id),
    service: PredictionService = Depends(get_prediction_service),
):
    """
    Generate today's prediction for a symbol.

    Returns 200 with the new record, 409 with the stored record if one already
    exists for today, 400 on non-trading days and 502 when an upstream service
    fails (safe to retry).
    """
    try:
        result = service.generate(user_id, payload.symbol)
    except MarketClosedError as e:
        raise MarketClosedException(
            reason=e.reason,
            most_recent=dump_prediction(e.most_recent),
            details=e.details,
        )
    except InsufficientDataError as e:
        raise DataUnavailableException(e.message, details=e.details)
    except ExternalServiceError as e:
        logger.warning(f"Prediction generation failed for {payload.symbol}: {e.message}")
        raise GenerationFailedException(e.message, details=e.details)

    if not result.created:
        raise PredictionExistsException(dump_prediction(result.record))

    return PredictionResponse.from_record(result.record)


@router.post("/evaluate", response_model=EvaluationSummaryResponse)
@limiter.limit(settings.EVALUATE_RATE_LIMIT)
def run_evaluation(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Run an evaluation pass now instead of waiting for the scheduler"""
    logger.info(f"Manual evaluation pass requested by {user_id}")
    summary = AccuracyEvaluator(db).run()
    return EvaluationSummaryResponse.model_validate(summary.to_dict())


@router.delete("/{prediction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_prediction(
    prediction_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete one of the caller's predictions"""
    deleted = PredictionRepository(db).delete(prediction_id, user_id)
    if not deleted:
        raise ResourceNotFoundException("Prediction", str(prediction_id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
