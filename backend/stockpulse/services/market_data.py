"""
Market data sources.

YahooMarketDataClient pulls intraday series and daily bars from Yahoo Finance.
HistoricalPriceProvider serves recorded closes out of the historical_prices
table and is what the accuracy evaluator grades against.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

import pandas as pd
import yfinance as yf
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential
from loguru import logger

from stockpulse.config import settings
from stockpulse.db.repositories import HistoricalPriceRepository
from stockpulse.domain.indicators import PriceSample
from stockpulse.utils.datetime import to_utc_naive
from stockpulse.utils.errors import MarketDataError


@dataclass(frozen=True)
class DailyBar:
    """One daily OHLCV bar."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: Optional[int]


@retry(
    stop=stop_after_attempt(settings.market_data_max_retries),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
def _download_history(symbol: str, **kwargs) -> pd.DataFrame:
    return yf.Ticker(symbol).history(**kwargs)


def _optional_volume(value) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


class YahooMarketDataClient:
    """Historical and intraday quote provider backed by yfinance."""

    def __init__(self, interval: Optional[str] = None, period: Optional[str] = None):
        self.interval = interval or settings.intraday_interval
        self.period = period or settings.intraday_period

    def _history(self, symbol: str, **kwargs) -> pd.DataFrame:
        try:
            df = _download_history(symbol, **kwargs)
        except Exception as e:
            logger.error(f"Yahoo Finance request failed for {symbol}: {e}")
            raise MarketDataError(
                f"Failed to fetch market data for {symbol}",
                details={"symbol": symbol, "error": str(e)},
            ) from e

        if df is None or df.empty:
            logger.warning(f"No price data available for {symbol}")
            return pd.DataFrame()
        return df

    def get_intraday_series(self, symbol: str, as_of: Optional[date] = None) -> List[PriceSample]:
        """
        Intraday samples for the most recent session, oldest first.

        With ``as_of`` the session of that calendar day is fetched instead.
        """
        symbol = symbol.upper()
        if as_of is None:
            df = self._history(symbol, period=self.period, interval=self.interval)
        else:
            df = self._history(
                symbol,
                start=as_of.isoformat(),
                end=(as_of + timedelta(days=1)).isoformat(),
                interval=self.interval,
            )

        samples = []
        for ts, row in df.iterrows():
            close = row.get("Close")
            if close is None or pd.isna(close):
                continue
            samples.append(PriceSample(
                timestamp=to_utc_naive(ts.to_pydatetime()),
                price=float(close),
                volume=_optional_volume(row.get("Volume")),
            ))

        logger.info(f"Fetched {len(samples)} intraday samples for {symbol}")
        return samples

    def get_daily_bars(self, symbol: str, start: date, end: date) -> List[DailyBar]:
        """Daily bars with ``start <= date <= end``."""
        symbol = symbol.upper()
        df = self._history(
            symbol,
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            interval="1d",
        )

        bars = []
        for ts, row in df.iterrows():
            if pd.isna(row.get("Close")):
                continue
            bars.append(DailyBar(
                date=ts.date(),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=_optional_volume(row.get("Volume")),
            ))
        return bars


class HistoricalPriceProvider:
    """
    Close prices from the historical_prices table.

    Read-only. Lookups are memoised per instance so one evaluation pass asks
    the database at most once per (symbol, date).
    """

    def __init__(self, db: Session):
        self.repo = HistoricalPriceRepository(db)
        self._cache: Dict[Tuple[str, date], Optional[float]] = {}

    def get_close_price(self, symbol: str, day: date) -> Optional[float]:
        key = (symbol.upper(), day)
        if key not in self._cache:
            self._cache[key] = self.repo.get_close(symbol, day)
        return self._cache[key]
