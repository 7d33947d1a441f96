"""
US equity trading calendar.

Trading days and session hours come from the NYSE exchange calendar, so
holidays, observed holidays and early closes follow the exchange without a
hand-kept list. Sessions are compared in UTC; calendar days are always the
market-timezone day, never the server's local one.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Union

import pandas_market_calendars as mcal
from loguru import logger

from stockpulse.utils.datetime import market_date, to_market_datetime, utcnow

NYSE = mcal.get_calendar("NYSE")

# Bounds runaway searches if the calendar is ever misconfigured
_MAX_SEARCH_DAYS = 31

DateLike = Union[date, datetime, str, None]
Session = Tuple[datetime, datetime]


@dataclass(frozen=True)
class MarketStatus:
    """Market state at one moment."""
    is_open: bool
    is_trading_day: bool
    reason: str
    market_day: date
    next_trading_day: Optional[date] = None
    closes_at: Optional[datetime] = None  # naive UTC, None on closed days

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["market_day"] = self.market_day.isoformat()
        data["next_trading_day"] = self.next_trading_day.isoformat() if self.next_trading_day else None
        data["closes_at"] = self.closes_at.isoformat() if self.closes_at else None
        return data


@lru_cache(maxsize=16)
def _sessions_for_year(year: int) -> Dict[date, Session]:
    """Open and close (aware UTC) of every NYSE session in ``year``."""
    schedule = NYSE.schedule(start_date=f"{year}-01-01", end_date=f"{year}-12-31")
    sessions = {
        ts.date(): (row.market_open.to_pydatetime(), row.market_close.to_pydatetime())
        for ts, row in schedule.iterrows()
    }
    logger.debug(f"Loaded {len(sessions)} NYSE sessions for {year}")
    return sessions


def session_for(day: date) -> Optional[Session]:
    """Session bounds for ``day``, or None when the exchange is closed."""
    return _sessions_for_year(day.year).get(day)


def _closed_reason(day: date) -> Optional[str]:
    if day.weekday() == 5:
        return "Saturday"
    if day.weekday() == 6:
        return "Sunday"
    if session_for(day) is None:
        return "Market Holiday"
    return None


def is_trading_day(value: DateLike = None) -> bool:
    """True if the market-timezone calendar day of ``value`` is an NYSE session."""
    return session_for(market_date(value)) is not None


def next_trading_day(value: DateLike = None) -> date:
    """First trading day strictly after ``value``."""
    day = market_date(value)
    for _ in range(_MAX_SEARCH_DAYS):
        day += timedelta(days=1)
        if is_trading_day(day):
            return day
    raise ValueError(f"No trading day within {_MAX_SEARCH_DAYS} days after {market_date(value)}")


def previous_trading_day(value: DateLike = None) -> date:
    """Last trading day strictly before ``value``."""
    day = market_date(value)
    for _ in range(_MAX_SEARCH_DAYS):
        day -= timedelta(days=1)
        if is_trading_day(day):
            return day
    raise ValueError(f"No trading day within {_MAX_SEARCH_DAYS} days before {market_date(value)}")


def last_trading_day(value: DateLike = None) -> date:
    """``value``'s day if it trades, otherwise the previous trading day."""
    day = market_date(value)
    return day if is_trading_day(day) else previous_trading_day(day)


def resolve_target_date(value: DateLike) -> date:
    """First trading day on or after ``value``; a horizon's close is read on this day."""
    day = market_date(value)
    return day if is_trading_day(day) else next_trading_day(day)


def get_market_status(moment: Optional[datetime] = None) -> MarketStatus:
    """
    Market status at ``moment`` (naive datetimes are UTC; defaults to now).

    Examples:
        >>> get_market_status(datetime(2025, 11, 22, 15, 0)).reason
        'Saturday'
        >>> get_market_status(datetime(2025, 11, 21, 15, 0)).is_open  # 10:00 ET
        True
    """
    moment = moment or utcnow()
    local = to_market_datetime(moment)
    day = local.date()

    reason = _closed_reason(day)
    if reason:
        return MarketStatus(
            is_open=False,
            is_trading_day=False,
            reason=reason,
            market_day=day,
            next_trading_day=next_trading_day(day),
        )

    opens_at, closes_at = session_for(day)
    now = local.astimezone(timezone.utc)
    is_open = opens_at <= now < closes_at
    upcoming = None
    if is_open:
        reason = "Market Open"
    elif now < opens_at:
        reason = "Before Market Open"
        upcoming = day
    else:
        reason = "After Market Close"
        upcoming = next_trading_day(day)

    return MarketStatus(
        is_open=is_open,
        is_trading_day=True,
        reason=reason,
        market_day=day,
        next_trading_day=upcoming,
        closes_at=closes_at.replace(tzinfo=None),
    )
