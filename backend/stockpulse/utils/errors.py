"""
Custom exceptions for StockPulse.

Provides domain-specific exceptions with clear error messages and
support for structured error handling.
"""

from typing import Optional, Dict, Any


class StockPulseError(Exception):
    """Base exception for all StockPulse errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# Database Errors
# ============================================================================

class DatabaseError(StockPulseError):
    """Database operation failed."""
    pass


class ConflictError(DatabaseError):
    """A uniqueness constraint rejected the write."""
    pass


# ============================================================================
# Prediction Errors
# ============================================================================

class InsufficientDataError(StockPulseError):
    """Price series is empty, no indicators can be derived."""
    pass


class MarketClosedError(StockPulseError):
    """Generation refused because the day is not a trading day."""

    def __init__(self, reason: str, most_recent: Any = None, **kwargs):
        super().__init__(f"Market closed: {reason}", **kwargs)
        self.reason = reason
        self.most_recent = most_recent


class EvaluationDataUnavailableError(StockPulseError):
    """Actual close price for a matured horizon is not available yet."""
    pass


# ============================================================================
# External Service Errors
# ============================================================================

class ExternalServiceError(StockPulseError):
    """External service integration failed."""
    pass


class GenerationFailedError(ExternalServiceError):
    """Reasoning service failed, timed out or returned unparseable output."""
    pass


class MarketDataError(ExternalServiceError):
    """Market data retrieval error."""
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(StockPulseError):
    """Application configuration error."""
    pass


class MissingSecretError(ConfigurationError):
    """Required secret/environment variable not configured."""
    pass
