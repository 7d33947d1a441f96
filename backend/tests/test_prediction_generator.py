"""
Unit tests for the prediction generator: request construction and parsing of
both response shapes.
"""

import json

import pytest

from conftest import FakeReasoningClient, flat_response, make_samples
from stockpulse.config import settings
from stockpulse.domain.horizons import HORIZONS, ONE_DAY, ONE_MONTH, ONE_WEEK
from stockpulse.domain.indicators import compute_indicators, describe_rsi
from stockpulse.services.prediction_generator import (
    DEFAULT_REASONING,
    PredictionGenerator,
    normalize_confidence,
)
from stockpulse.utils.datetime import market_date
from stockpulse.utils.errors import GenerationFailedError

CURRENT_PRICE = 200.0


@pytest.fixture
def samples():
    return make_samples([199.0, 199.5, 200.2, 199.8, 200.0])


@pytest.fixture
def indicators(samples):
    return compute_indicators(samples)


def generate(response, samples, indicators, **kwargs):
    generator = PredictionGenerator(FakeReasoningClient(response=response), **kwargs)
    return generator.generate("aapl", CURRENT_PRICE, samples, indicators)


class TestRequest:
    """The request embeds only supplied data and is deterministic."""

    def test_request_shape(self, samples, indicators):
        client = FakeReasoningClient()
        PredictionGenerator(client).generate("AAPL", CURRENT_PRICE, samples, indicators)

        assert len(client.requests) == 1
        request = client.requests[0]
        assert request["model"] == settings.openai_model
        assert request["temperature"] == settings.openai_temperature
        assert request["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in request["messages"]] == ["system", "user"]

    def test_prompt_embeds_indicators_and_series(self, samples, indicators):
        prompt = PredictionGenerator(FakeReasoningClient()).build_prompt("AAPL", CURRENT_PRICE, samples, indicators)

        assert "Current Stock: AAPL" in prompt
        assert "SMA_20: insufficient data" in prompt
        assert f"RSI_14: {indicators.rsi14:.1f} ({describe_rsi(indicators.rsi14)})" in prompt
        assert f"Recent Support: ${indicators.support:.2f}" in prompt
        assert f"Recent Resistance: ${indicators.resistance:.2f}" in prompt
        for sample in samples:
            assert f"{sample.price:.4f}" in prompt

    def test_same_input_same_request(self, samples, indicators):
        generator = PredictionGenerator(FakeReasoningClient())
        first = generator.build_request("AAPL", CURRENT_PRICE, samples, indicators)
        second = generator.build_request("AAPL", CURRENT_PRICE, samples, indicators)
        assert first == second


class TestFlatResponse:

    def test_all_horizons_parsed(self, samples, indicators):
        candidate = generate(flat_response(204.0, 206.0, 210.0, confidence=70), samples, indicators)

        assert candidate.symbol == "AAPL"
        one_day = candidate.forecast(ONE_DAY)
        assert one_day.price == 204.0
        assert one_day.confidence == 70
        assert one_day.low == pytest.approx(199.92)
        assert one_day.high == pytest.approx(208.08)
        assert one_day.direction == "up"
        assert one_day.reasoning == DEFAULT_REASONING["1d"]
        assert candidate.forecast(ONE_MONTH).price == 210.0
        assert candidate.trend == "bullish"
        assert candidate.recommendation == "buy"

    def test_missing_horizon_has_null_price_and_zero_confidence(self, samples, indicators):
        candidate = generate(flat_response(one_month=None), samples, indicators)

        one_month = candidate.forecast(ONE_MONTH)
        assert one_month.price is None
        assert one_month.direction is None
        assert one_month.confidence == 0
        assert set(candidate.forecasts) == {h.key for h in HORIZONS}

    def test_explicit_direction_wins_over_derived(self, samples, indicators):
        response = flat_response()
        response["predictions"]["1d"]["direction"] = "sideways"
        candidate = generate(response, samples, indicators)
        assert candidate.forecast(ONE_DAY).direction == "sideways"

    def test_small_move_is_sideways(self, samples, indicators):
        candidate = generate(flat_response(one_day=200.5), samples, indicators)
        assert candidate.forecast(ONE_DAY).direction == "sideways"

    def test_falling_price_is_down(self, samples, indicators):
        candidate = generate(flat_response(one_week=190.0), samples, indicators)
        assert candidate.forecast(ONE_WEEK).direction == "down"

    def test_unknown_recommendation_defaults_to_hold(self, samples, indicators):
        response = flat_response()
        response["recommendation"] = "YOLO"
        assert generate(response, samples, indicators).recommendation == "hold"


class TestArrayResponse:

    def test_structured_reasoning_stored_as_text(self, samples, indicators):
        response = {
            "predictions": [
                {
                    "timeframe": "1 day",
                    "predictedPrice": 201.0,
                    "confidence": 60,
                    "direction": "up",
                    "reasoning": {"summary": "Breakout", "factors": ["volume"]},
                },
                {
                    "timeframe": "1 week",
                    "predictedPrice": 202.0,
                    "confidence": 50,
                    "direction": "up",
                    "reasoning": 42,
                },
            ],
        }
        candidate = generate(response, samples, indicators)

        one_day = candidate.forecast(ONE_DAY)
        assert isinstance(one_day.reasoning, str)
        assert json.loads(one_day.reasoning) == {"factors": ["volume"], "summary": "Breakout"}
        assert candidate.forecast(ONE_WEEK).reasoning == DEFAULT_REASONING[ONE_WEEK.key]

    def test_array_of_horizons(self, samples, indicators):
        response = {
            "predictions": [
                {
                    "timeframe": "1 day",
                    "predictedPrice": 198.0,
                    "confidence": 65,
                    "direction": "down",
                    "reasoning": "Fading momentum into resistance",
                    "confidenceInterval": {"low": 196.0, "high": 200.0},
                },
                {
                    "timeframe": "1 week",
                    "predictedPrice": 203.0,
                    "confidence": 0.55,
                    "direction": "bullish",
                    "reasoning": "Higher lows",
                    "confidenceInterval": {"low": 198.0, "high": 208.0},
                },
            ],
            "technicalAnalysis": {"trend": "bearish", "recommendation": "sell"},
        }
        candidate = generate(response, samples, indicators)

        one_day = candidate.forecast(ONE_DAY)
        assert one_day.price == 198.0
        assert one_day.direction == "down"
        assert one_day.reasoning == "Fading momentum into resistance"
        assert (one_day.low, one_day.high) == (196.0, 200.0)

        one_week = candidate.forecast(ONE_WEEK)
        assert one_week.direction == "up"
        assert one_week.confidence == 55

        assert candidate.forecast(ONE_MONTH).price is None
        assert candidate.forecast(ONE_MONTH).confidence == 0
        assert candidate.trend == "bearish"
        assert candidate.recommendation == "sell"


class TestFailures:

    def test_invalid_json(self, samples, indicators):
        with pytest.raises(GenerationFailedError):
            generate("this is not json", samples, indicators)

    def test_unrecognised_shape(self, samples, indicators):
        with pytest.raises(GenerationFailedError):
            generate({"analysis": "looks good"}, samples, indicators)

    def test_non_object_json(self, samples, indicators):
        with pytest.raises(GenerationFailedError):
            generate(json.dumps([1, 2, 3]), samples, indicators)

    def test_client_failure_propagates(self, samples, indicators):
        client = FakeReasoningClient(error=GenerationFailedError("timed out"))
        with pytest.raises(GenerationFailedError):
            PredictionGenerator(client).generate("AAPL", CURRENT_PRICE, samples, indicators)


class TestRecordAndLimitations:

    def test_to_record_couples_null_price_with_zero_confidence(self, samples, indicators):
        candidate = generate(flat_response(one_week=None, confidence=90), samples, indicators)
        record = candidate.to_record("user-1")

        assert record.user_id == "user-1"
        assert record.symbol == "AAPL"
        assert record.current_price == CURRENT_PRICE
        assert record.prediction_day == market_date(candidate.generated_at)
        assert record.price_threshold == settings.default_price_threshold
        assert record.rsi == indicators.rsi14
        for horizon in HORIZONS:
            if record.horizon_value(horizon, "price") is None:
                assert record.horizon_value(horizon, "confidence") == 0
        assert record.one_week_price is None
        assert record.one_day_confidence == 90

    def test_short_series_flags_limitations(self, samples, indicators):
        candidate = generate(flat_response(), samples, indicators)
        assert candidate.data_limitations == {
            "hasLimitedHistoricalData": True,
            "isIntradayOnly": True,
            "longerTermPredictionsUncertain": True,
        }

    def test_full_series_clears_limitations(self):
        long_samples = make_samples([200.0 + (i % 7) * 0.1 for i in range(250)])
        candidate = generate(flat_response(), long_samples, compute_indicators(long_samples))
        assert candidate.data_limitations["hasLimitedHistoricalData"] is False
        assert candidate.data_limitations["longerTermPredictionsUncertain"] is False


@pytest.mark.parametrize("raw,expected", [
    (70, 70),
    (0.8, 80),
    (150, 100),
    (-5, 0),
    ("65", 65),
    (None, 0),
    ("high", 0),
])
def test_normalize_confidence(raw, expected):
    assert normalize_confidence(raw) == expected
