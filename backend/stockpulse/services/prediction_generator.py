"""
Prediction generator.

Builds a deterministic chat-completions request from an intraday series and
its precomputed indicators, sends it to the reasoning service and normalises
the answer into one forecast per horizon.

Two response shapes are accepted:

* flat, keyed by horizon::

    {"predictions": {"1d": {"point": 204.0, "low": 201.0, "high": 207.0,
                            "confidence": 70}, ...},
     "technical": {"trend": "up", "support_levels": [...], "resistance_levels": [...]},
     "recommendation": "buy"}

* an array of horizon objects::

    {"predictions": [{"timeframe": "1 day", "predictedPrice": 204.0,
                      "confidence": 70, "direction": "up", "reasoning": "...",
                      "confidenceInterval": {"low": 201.0, "high": 207.0}}, ...],
     "technicalAnalysis": {"trend": "bullish", "recommendation": "buy"}}

A horizon absent from the answer is kept with a null price and confidence 0.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from stockpulse.config import settings
from stockpulse.db.models import Prediction
from stockpulse.domain.horizons import (
    HORIZONS,
    Horizon,
    direction_from_change,
    find_horizon,
    normalize_direction,
)
from stockpulse.domain.indicators import IndicatorSnapshot, PriceSample, describe_rsi
from stockpulse.utils.datetime import market_date, utcnow
from stockpulse.utils.errors import GenerationFailedError

SYSTEM_PROMPT = (
    "You are a professional financial analyst. Use only the data and indicators "
    "provided or computed. If you must estimate a value (e.g., support level), "
    "include a \"note\":\"estimated\" for that field. Always respond in valid JSON format."
)

DEFAULT_REASONING = {
    "1d": "Based on pre-computed indicators and price patterns",
    "1w": "Based on weekly trend analysis and support/resistance levels",
    "1m": "Based on longer-term technical indicators and market patterns",
}

_TREND_LABELS = {"up": "bullish", "down": "bearish", "sideways": "neutral"}
_RECOMMENDATIONS = ("buy", "sell", "hold")


@dataclass
class HorizonForecast:
    """Canonical per-horizon prediction block."""
    horizon: Horizon
    price: Optional[float] = None
    confidence: int = 0
    direction: Optional[str] = None
    reasoning: Optional[str] = None
    low: Optional[float] = None
    high: Optional[float] = None

    @property
    def is_missing(self) -> bool:
        return self.price is None


@dataclass
class PredictionCandidate:
    """An unsaved prediction produced by the generator."""
    symbol: str
    current_price: float
    indicators: IndicatorSnapshot
    forecasts: Dict[str, HorizonForecast]
    trend: str = "neutral"
    recommendation: str = "hold"
    data_limitations: Dict[str, bool] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=utcnow)

    def forecast(self, horizon: Horizon) -> HorizonForecast:
        return self.forecasts[horizon.key]

    @property
    def prediction_day(self) -> date:
        return market_date(self.generated_at)

    def to_record(
        self,
        user_id: str,
        prediction_day: Optional[date] = None,
        price_threshold: Optional[float] = None,
    ) -> Prediction:
        """Build the ORM row for ``user_id``; nothing is persisted here."""
        record = Prediction(
            user_id=user_id,
            symbol=self.symbol,
            prediction_date=self.generated_at,
            prediction_day=prediction_day or self.prediction_day,
            current_price=self.current_price,
            rsi=self.indicators.rsi14,
            sma20=self.indicators.sma20,
            support=self.indicators.support,
            resistance=self.indicators.resistance,
            trend_slope=self.indicators.trend_slope,
            trend=self.trend,
            recommendation=self.recommendation,
            data_limitations=self.data_limitations,
            price_threshold=price_threshold if price_threshold is not None else settings.default_price_threshold,
            generated_at=self.generated_at,
            updated_at=self.generated_at,
        )

        for horizon in HORIZONS:
            forecast = self.forecast(horizon)
            setattr(record, horizon.column("price"), forecast.price)
            setattr(record, horizon.column("confidence"), forecast.confidence)
            setattr(record, horizon.column("direction"), forecast.direction)
            setattr(record, horizon.column("reasoning"), forecast.reasoning)
            setattr(record, horizon.column("low"), forecast.low)
            setattr(record, horizon.column("high"), forecast.high)

        return record


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _reasoning_text(value: Any, horizon: Horizon) -> str:
    """Model reasoning as text; structured values are kept as JSON."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (dict, list)) and value:
        return json.dumps(value, sort_keys=True)
    return DEFAULT_REASONING[horizon.key]


def normalize_confidence(value: Any) -> int:
    """
    Coerce a model-supplied confidence into an integer percentage in [0, 100].

    Fractions such as 0.75 are read as 75 percent.

    Examples:
        >>> normalize_confidence(0.75)
        75
        >>> normalize_confidence(130)
        100
        >>> normalize_confidence("n/a")
        0
    """
    number = _to_float(value)
    if number is None:
        return 0
    if 0 < number < 1:
        number *= 100
    return int(round(min(max(number, 0.0), 100.0)))


def data_limitations(sample_count: int) -> Dict[str, bool]:
    return {
        "hasLimitedHistoricalData": sample_count < settings.limited_data_samples,
        "isIntradayOnly": True,
        "longerTermPredictionsUncertain": sample_count < settings.longer_term_min_samples,
    }


class PredictionGenerator:
    """Turns price data plus indicators into a PredictionCandidate via the reasoning service."""

    def __init__(
        self,
        client,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        band_percent: Optional[float] = None,
    ):
        self.client = client
        self.model = model or settings.openai_model
        self.temperature = temperature if temperature is not None else settings.openai_temperature
        self.band_percent = band_percent if band_percent is not None else settings.sideways_band_percent

    def build_prompt(
        self,
        symbol: str,
        current_price: float,
        samples: Sequence[PriceSample],
        indicators: IndicatorSnapshot,
    ) -> str:
        sma = f"{indicators.sma20:.2f}" if indicators.sma20 is not None else "insufficient data"
        series = "\n".join(
            f"{s.timestamp.strftime('%Y-%m-%d %H:%M')} {s.price:.4f}"
            + (f" vol={s.volume}" if s.volume is not None else "")
            for s in samples
        )

        return f"""
Current Stock: {symbol}
Current Price: ${current_price:.2f}
Data Points: {len(samples)} five-minute intervals

Pre-computed indicators:
- SMA_20: {sma}
- RSI_14: {indicators.rsi14:.1f} ({describe_rsi(indicators.rsi14)})
- Recent Support: ${indicators.support:.2f}
- Recent Resistance: ${indicators.resistance:.2f}
- Price Slope: {indicators.trend_slope:.4f} (recent trend)
- Price Range: ${indicators.price_low:.2f} - ${indicators.price_high:.2f}

Price series (UTC timestamp, price):
{series}

Please provide exactly this output:
{{
  "predictions": {{
    "1d": {{"point": number, "low": number, "high": number, "confidence": integer, "direction": "up" | "down" | "sideways"}},
    "1w": {{"point": number, "low": number, "high": number, "confidence": integer, "direction": "up" | "down" | "sideways"}},
    "1m": {{"point": number, "low": number, "high": number, "confidence": integer, "direction": "up" | "down" | "sideways"}}
  }},
  "technical": {{
    "trend": "up" | "down" | "sideways",
    "support_levels": [number],
    "resistance_levels": [number]
  }},
  "recommendation": "buy" | "sell" | "hold"
}}

Use common technical analysis conventions. Use only the data above. If a horizon cannot be
estimated from it, omit that horizon. Base predictions on the current price of ${current_price:.2f}.
""".strip()

    def build_request(
        self,
        symbol: str,
        current_price: float,
        samples: Sequence[PriceSample],
        indicators: IndicatorSnapshot,
    ) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(symbol, current_price, samples, indicators)},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
        }

    def generate(
        self,
        symbol: str,
        current_price: float,
        samples: Sequence[PriceSample],
        indicators: IndicatorSnapshot,
    ) -> PredictionCandidate:
        """
        Ask the reasoning service for a forecast.

        Raises:
            GenerationFailedError: if the call fails or the answer cannot be parsed
        """
        symbol = symbol.upper()
        request = self.build_request(symbol, current_price, samples, indicators)

        logger.info(f"Requesting prediction for {symbol} ({len(samples)} samples, model={self.model})")
        content = self.client.complete(request)

        candidate = self.parse_response(content, symbol, current_price, indicators)
        missing = [key for key, f in candidate.forecasts.items() if f.is_missing]
        if missing:
            logger.warning(f"Prediction for {symbol} is missing horizons: {missing}")
        return candidate

    def parse_response(
        self,
        content: str,
        symbol: str,
        current_price: float,
        indicators: IndicatorSnapshot,
    ) -> PredictionCandidate:
        try:
            data = json.loads(content)
        except (TypeError, ValueError) as e:
            logger.error(f"Unparseable prediction response for {symbol}: {str(content)[:200]}")
            raise GenerationFailedError("Reasoning service returned invalid JSON") from e

        if not isinstance(data, dict):
            raise GenerationFailedError("Reasoning service response is not a JSON object")

        predictions = data.get("predictions")
        if isinstance(predictions, dict) and any(find_horizon(k) for k in predictions):
            raw, trend, recommendation = self._read_flat(data, predictions)
        elif isinstance(predictions, list):
            raw, trend, recommendation = self._read_array(data, predictions)
        else:
            raise GenerationFailedError(
                "Reasoning service response has no recognisable predictions",
                details={"keys": sorted(data.keys())},
            )

        forecasts = {
            h.key: self._normalize(h, raw.get(h.key), current_price)
            for h in HORIZONS
        }

        return PredictionCandidate(
            symbol=symbol,
            current_price=current_price,
            indicators=indicators,
            forecasts=forecasts,
            trend=_TREND_LABELS.get(normalize_direction(trend), "neutral"),
            recommendation=self._recommendation(recommendation),
            data_limitations=data_limitations(indicators.sample_count),
        )

    def _read_flat(self, data: Dict[str, Any], predictions: Dict[str, Any]):
        raw = {}
        for key, block in predictions.items():
            horizon = find_horizon(key)
            if horizon is None or not isinstance(block, dict):
                continue
            raw[horizon.key] = {
                "price": block.get("point", block.get("predictedPrice", block.get("price"))),
                "low": block.get("low"),
                "high": block.get("high"),
                "confidence": block.get("confidence"),
                "direction": block.get("direction"),
                "reasoning": block.get("reasoning"),
            }

        technical = data.get("technical") or {}
        return raw, technical.get("trend"), data.get("recommendation")

    def _read_array(self, data: Dict[str, Any], predictions: List[Any]):
        raw = {}
        for item in predictions:
            if not isinstance(item, dict):
                continue
            horizon = find_horizon(item.get("timeframe"))
            if horizon is None:
                continue
            interval = item.get("confidenceInterval") or {}
            raw[horizon.key] = {
                "price": item.get("predictedPrice", item.get("point")),
                "low": interval.get("low") if isinstance(interval, dict) else None,
                "high": interval.get("high") if isinstance(interval, dict) else None,
                "confidence": item.get("confidence"),
                "direction": item.get("direction"),
                "reasoning": item.get("reasoning"),
            }

        technical = data.get("technicalAnalysis") or {}
        recommendation = technical.get("recommendation") or data.get("recommendation")
        return raw, technical.get("trend"), recommendation

    def _normalize(self, horizon: Horizon, block: Optional[Dict[str, Any]], current_price: float) -> HorizonForecast:
        if not block:
            return HorizonForecast(horizon=horizon)

        price = _to_float(block.get("price"))
        if price is None or price <= 0:
            return HorizonForecast(horizon=horizon)

        direction = normalize_direction(block.get("direction"))
        if direction is None:
            direction = direction_from_change(current_price, price, self.band_percent)

        return HorizonForecast(
            horizon=horizon,
            price=price,
            confidence=normalize_confidence(block.get("confidence")),
            direction=direction,
            reasoning=_reasoning_text(block.get("reasoning"), horizon),
            low=_to_float(block.get("low")),
            high=_to_float(block.get("high")),
        )

    @staticmethod
    def _recommendation(value: Any) -> str:
        text = str(value).strip().lower() if value else ""
        return text if text in _RECOMMENDATIONS else "hold"
