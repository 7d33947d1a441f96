"""
Background jobs for StockPulse.

Jobs:
- record_prices: Record daily closes from Yahoo Finance for every predicted symbol
- evaluate_predictions: Grade matured prediction horizons against recorded closes
"""
