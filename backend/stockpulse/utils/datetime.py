"""
Centralized datetime and timezone utilities for StockPulse.

Timestamps are stored as naive UTC. Calendar days (the prediction dedup key,
horizon target dates) are always expressed in the market timezone.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional

import pytz

from stockpulse.config import settings


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def market_tz():
    return pytz.timezone(settings.market_timezone)


def to_market_datetime(value: datetime) -> datetime:
    """
    Convert a datetime to the market timezone.

    Naive datetimes are assumed to be UTC, matching how they are stored.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(market_tz())


def to_utc_naive(value: datetime) -> datetime:
    """Normalise an aware or naive datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def market_date(value: Any = None) -> Optional[date]:
    """
    Calendar date of ``value`` in the market timezone.

    Accepts datetimes (naive = UTC), dates (returned unchanged), ISO strings
    or None (meaning now).

    Examples:
        >>> market_date(datetime(2025, 11, 21, 21, 0))
        datetime.date(2025, 11, 21)
        >>> market_date(datetime(2025, 11, 22, 2, 0))  # 21:00 EST the day before
        datetime.date(2025, 11, 21)
    """
    if value is None:
        value = utcnow()

    if isinstance(value, datetime):
        return to_market_datetime(value).date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return to_market_datetime(parsed).date()

    raise TypeError(f"Cannot convert {type(value).__name__} to a market date")
