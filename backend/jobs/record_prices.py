"""
Daily close recording job using Yahoo Finance.

Fetches daily bars for every symbol that has predictions and upserts them into
the historical_prices table, which the accuracy evaluator reads. Today's bar is
only recorded once the session has closed.

Can be run:
- Manually: python backend/jobs/record_prices.py [--symbols AAPL MSFT] [--days-back 45]
- Scheduled via APScheduler in the main application
"""

import argparse
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from stockpulse.db.repositories import HistoricalPriceRepository, PredictionRepository
from stockpulse.db.session import get_db_context
from stockpulse.log_config import logger
from stockpulse.services.market_data import YahooMarketDataClient
from stockpulse.services.market_schedule import get_market_status, last_trading_day, previous_trading_day
from stockpulse.utils.errors import MarketDataError

# Covers the longest horizon plus holiday slack on the first run
DEFAULT_DAYS_BACK = 45


def record_prices(
    symbols: Optional[List[str]] = None,
    days_back: int = DEFAULT_DAYS_BACK,
    client: Optional[YahooMarketDataClient] = None,
    moment: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Record daily closes for ``symbols`` (default: every predicted symbol).

    ``moment`` (naive UTC, default now) decides which bars are complete.

    Returns:
        Statistics about the run
    """
    client = client or YahooMarketDataClient()
    status = get_market_status(moment)
    today = status.market_day
    # Today's bar is partial until the session closes
    if status.is_trading_day and status.reason != "After Market Close":
        last_complete = previous_trading_day(today)
    else:
        last_complete = last_trading_day(today)

    stats = {
        "symbols_processed": 0,
        "records_inserted": 0,
        "records_updated": 0,
        "errors": 0,
    }

    with get_db_context() as db:
        if symbols is None:
            symbols = PredictionRepository(db).distinct_symbols()
            logger.info(f"Recording closes for {len(symbols)} predicted symbols")

        prices = HistoricalPriceRepository(db)

        for symbol in symbols:
            symbol = symbol.upper()
            latest = prices.latest_date(symbol)
            start = latest + timedelta(days=1) if latest else today - timedelta(days=days_back)

            if start > last_complete:
                logger.info(f"{symbol}: already up to date")
                stats["symbols_processed"] += 1
                continue

            try:
                bars = client.get_daily_bars(symbol, start - timedelta(days=7), last_complete)
            except MarketDataError as e:
                logger.error(f"Error fetching {symbol}: {e.message}")
                stats["errors"] += 1
                continue

            previous_close = None
            for bar in bars:
                if bar.date >= start:
                    change = bar.close - previous_close if previous_close else None
                    inserted = prices.upsert(
                        symbol,
                        bar.date,
                        bar.close,
                        open_price=bar.open,
                        high_price=bar.high,
                        low_price=bar.low,
                        volume=bar.volume,
                        change=change,
                        change_percent=(change / previous_close * 100) if change is not None else None,
                        source="yahoo",
                    )
                    stats["records_inserted" if inserted else "records_updated"] += 1
                previous_close = bar.close

            db.commit()
            stats["symbols_processed"] += 1
            logger.info(f"{symbol}: recorded closes through {last_complete}")

    logger.info(f"Close recording complete: {stats}")
    return stats


def main():
    """Entry point for manual or scheduled execution."""
    parser = argparse.ArgumentParser(description="Record daily closes for predicted symbols")
    parser.add_argument("--symbols", nargs="*", default=None, help="Symbols to record (default: all predicted)")
    parser.add_argument("--days-back", type=int, default=DEFAULT_DAYS_BACK, help="History to fetch on first run")
    args = parser.parse_args()

    try:
        record_prices(symbols=args.symbols, days_back=args.days_back)
    except Exception as e:
        logger.error(f"Job failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
