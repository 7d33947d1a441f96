"""Custom exception classes for StockPulse API"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from api.schemas.errors import ErrorCode


class StockPulseException(HTTPException):
    """Base exception with error_code support.

    ``extra`` fields are merged into the top level of the error body.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        status_code: int,
        details=None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.error_code = error_code
        self.details = details
        self.extra = extra or {}


class ResourceNotFoundException(StockPulseException):
    """Exception for when a resource is not found"""

    def __init__(self, resource: str, identifier: str = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"
        super().__init__(
            error_code=ErrorCode.NOT_FOUND,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND
        )


class PredictionExistsException(StockPulseException):
    """Today's prediction already exists; the stored record is returned"""

    def __init__(self, prediction: Dict[str, Any]):
        super().__init__(
            error_code=ErrorCode.ALREADY_EXISTS,
            message="A prediction for this symbol already exists today",
            status_code=status.HTTP_409_CONFLICT,
            extra={"prediction": prediction},
        )


class MarketClosedException(StockPulseException):
    """Generation refused on a non-trading day"""

    def __init__(self, reason: str, most_recent: Optional[Dict[str, Any]] = None, details=None):
        super().__init__(
            error_code=ErrorCode.MARKET_CLOSED,
            message=f"Market closed: {reason}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            extra={"marketClosed": True, "reason": reason, "mostRecentPrediction": most_recent},
        )


class DataUnavailableException(StockPulseException):
    """No price data to predict from"""

    def __init__(self, message: str, details=None):
        super().__init__(
            error_code=ErrorCode.DATA_UNAVAILABLE,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class GenerationFailedException(StockPulseException):
    """Upstream failure; the client may retry on explicit user action"""

    def __init__(self, message: str, details=None):
        super().__init__(
            error_code=ErrorCode.GENERATION_FAILED,
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
            extra={"retryable": True},
        )


class UnauthorizedException(StockPulseException):
    """Exception for unauthorized access"""

    def __init__(self, message: str = "Unauthorized access"):
        super().__init__(
            error_code=ErrorCode.UNAUTHORIZED,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED
        )
