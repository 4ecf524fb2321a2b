"""
Unit Tests for Response Parsers
===============================
"""

from __future__ import annotations

import json

import pytest

from permissionless_oracle.domain.services.response_parser import (
    Comparator,
    ExplicitAnswerParser,
    GenericResponseParser,
    NumericThresholdParser,
    ParserRegistry,
    extract_threshold,
)
from permissionless_oracle.ports.response_parser import ResponseParseError

BTC_QUESTION = "Will Bitcoin exceed $100,000 by end of 2026?"


def _raw(data: object) -> bytes:
    return json.dumps(data).encode()


class TestExtractThreshold:
    """Tests for threshold extraction from question text."""

    def test_currency_with_commas(self) -> None:
        threshold = extract_threshold(BTC_QUESTION)

        assert threshold is not None
        assert threshold.value == 100_000
        assert threshold.comparator is Comparator.GREATER

    def test_suffix_multiplier(self) -> None:
        threshold = extract_threshold("Will ETH reach $5k this year?")

        assert threshold is not None
        assert threshold.value == 5_000
        assert threshold.comparator is Comparator.AT_LEAST

    def test_below(self) -> None:
        threshold = extract_threshold("Will oil drop below $60 per barrel?")

        assert threshold is not None
        assert threshold.value == 60
        assert threshold.comparator is Comparator.LESS

    def test_percent(self) -> None:
        threshold = extract_threshold("Will inflation be above 3.5% in March?")

        assert threshold is not None
        assert threshold.value == 3.5
        assert threshold.is_percent

    def test_no_comparator(self) -> None:
        assert extract_threshold("Who wins the 2026 World Cup?") is None


class TestExplicitAnswerParser:
    """Tests for payloads that state the outcome."""

    def test_boolean_field_with_confidence(self) -> None:
        answer = ExplicitAnswerParser().parse(_raw({"outcome": True, "confidence": 0.9}), "q")

        assert answer.outcome is True
        assert answer.confidence == pytest.approx(0.9)

    def test_word_answer_and_percent_confidence(self) -> None:
        answer = ExplicitAnswerParser().parse(_raw({"answer": "No", "confidence": 80}), "q")

        assert answer.outcome is False
        assert answer.confidence == pytest.approx(0.8)

    def test_default_confidence(self) -> None:
        answer = ExplicitAnswerParser().parse(_raw({"result": "yes"}), "q")

        assert answer.confidence == pytest.approx(0.75)

    def test_missing_field(self) -> None:
        with pytest.raises(ResponseParseError):
            ExplicitAnswerParser().parse(_raw({"price": 1}), "q")


class TestNumericThresholdParser:
    """Tests for numeric readings compared against the question."""

    def test_above_threshold(self) -> None:
        answer = NumericThresholdParser().parse(_raw({"price": 105_000}), BTC_QUESTION)

        assert answer.outcome is True
        assert answer.value == 105_000
        assert answer.confidence == pytest.approx(0.855)

    def test_below_threshold(self) -> None:
        answer = NumericThresholdParser().parse(_raw({"price": 95_000}), BTC_QUESTION)

        assert answer.outcome is False

    def test_confidence_capped(self) -> None:
        answer = NumericThresholdParser().parse(_raw({"price": 500_000}), BTC_QUESTION)

        assert answer.confidence == pytest.approx(0.95)

    def test_nested_value(self) -> None:
        answer = NumericThresholdParser().parse(
            _raw({"bitcoin": {"usd": 101_500}}), BTC_QUESTION
        )

        assert answer.outcome is True

    def test_string_value(self) -> None:
        answer = NumericThresholdParser().parse(_raw({"price": "$99,500.00"}), BTC_QUESTION)

        assert answer.outcome is False
        assert answer.value == 99_500

    def test_probability_without_threshold(self) -> None:
        answer = NumericThresholdParser().parse(
            _raw({"probability": 0.7}), "Will the Lakers win the championship?"
        )

        assert answer.outcome is True
        assert answer.confidence == pytest.approx(0.7)

    def test_number_without_threshold_rejected(self) -> None:
        with pytest.raises(ResponseParseError):
            NumericThresholdParser().parse(_raw({"price": 10}), "Is this a good price?")

    def test_invalid_json(self) -> None:
        with pytest.raises(ResponseParseError):
            NumericThresholdParser().parse(b"<html>oops</html>", BTC_QUESTION)

    @pytest.mark.parametrize(
        "raw",
        [b'{"price": NaN}', b'{"price": Infinity}', b'{"quote": {"usd": -Infinity}}'],
    )
    def test_non_finite_value_rejected(self, raw: bytes) -> None:
        with pytest.raises(ResponseParseError):
            NumericThresholdParser().parse(raw, BTC_QUESTION)


class TestGenericAndRegistry:
    """Tests for the combined parser and the registry."""

    def test_explicit_wins_over_numeric(self) -> None:
        answer = GenericResponseParser().parse(
            _raw({"outcome": False, "price": 200_000}), BTC_QUESTION
        )

        assert answer.outcome is False

    def test_falls_back_to_numeric(self) -> None:
        answer = GenericResponseParser().parse(_raw({"price": 150_000}), BTC_QUESTION)

        assert answer.outcome is True

    def test_registry_resolves_names(self) -> None:
        registry = ParserRegistry()

        assert registry.resolve("numeric").parser_name == "numeric"
        assert registry.resolve(None).parser_name == "generic"
        assert registry.resolve("unknown").parser_name == "generic"
        assert registry.names == ["explicit", "generic", "numeric"]
