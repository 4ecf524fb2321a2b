"""
Response Parsers
================

Turns heterogeneous source payloads into a yes/no outcome for a question.

Parsing strategies, tried in order by the generic parser:
1. Explicit answer fields (``outcome``, ``answer``, ``result``, ...)
2. A numeric reading compared against the threshold in the question
   ("Will BTC exceed $100,000?" -> value > 100000)

A payload that yields neither raises ResponseParseError; the engine
then excludes the source instead of guessing.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from permissionless_oracle.ports.response_parser import (
    ParsedAnswer,
    ResponseParseError,
    ResponseParser,
)

logger = logging.getLogger(__name__)

ANSWER_FIELDS = ("outcome", "answer", "result", "resolved", "resolution")
CONFIDENCE_FIELDS = ("confidence", "certainty")
NUMERIC_FIELDS = ("price", "value", "amount", "count", "rate", "probability")
PROBABILITY_HINTS = ("prob", "chance", "likelihood")

TRUE_WORDS = frozenset({"true", "yes", "y", "1"})
FALSE_WORDS = frozenset({"false", "no", "n", "0"})

DEFAULT_ANSWER_CONFIDENCE = 0.75
BASE_NUMERIC_CONFIDENCE = 0.85
MAX_NUMERIC_CONFIDENCE = 0.95

_NUMBER_RE = re.compile(
    r"(?P<currency>[$€£¥])?\s*(?P<number>\d[\d,]*(?:\.\d+)?)"
    r"\s*(?P<suffix>%|(?:k|m|bn|b|thousand|million|billion)\b)?",
    re.IGNORECASE,
)
_STRING_VALUE_RE = re.compile(r"-?\d+(?:\.\d+)?")
_SUFFIX_MULTIPLIERS = {
    "k": 1e3,
    "thousand": 1e3,
    "m": 1e6,
    "million": 1e6,
    "b": 1e9,
    "bn": 1e9,
    "billion": 1e9,
}


class Comparator(Enum):
    """How a numeric reading is compared with the question's threshold."""

    GREATER = ">"
    LESS = "<"
    AT_LEAST = ">="


_COMPARATOR_PATTERNS: list[tuple[re.Pattern[str], Comparator]] = [
    (re.compile(r"\b(exceed|exceeds|above|more than|greater than|over|surpass)\b"), Comparator.GREATER),
    (re.compile(r"\b(below|under|less than|fewer than|drop beneath)\b"), Comparator.LESS),
    (re.compile(r"\b(reach|reaches|hit|hits|at least)\b"), Comparator.AT_LEAST),
]


@dataclass(frozen=True, slots=True)
class Threshold:
    """Numeric condition extracted from a question."""

    value: float
    comparator: Comparator
    is_percent: bool = False

    def evaluate(self, reading: float) -> bool:
        if self.comparator is Comparator.GREATER:
            return reading > self.value
        if self.comparator is Comparator.LESS:
            return reading < self.value
        return reading >= self.value


def extract_threshold(question: str) -> Threshold | None:
    """
    Find the comparator and the number it applies to.

    The first number after the comparator keyword wins, so a trailing
    year ("by 2026") does not shadow the threshold. Without a keyword
    there is no threshold.
    """
    lowered = question.lower()
    for pattern, comparator in _COMPARATOR_PATTERNS:
        keyword = pattern.search(lowered)
        if keyword is None:
            continue
        number = _NUMBER_RE.search(lowered, keyword.end())
        if number is None:
            continue
        value = float(number.group("number").replace(",", ""))
        suffix = (number.group("suffix") or "").lower()
        if suffix == "%":
            return Threshold(value=value, comparator=comparator, is_percent=True)
        value *= _SUFFIX_MULTIPLIERS.get(suffix, 1.0)
        return Threshold(value=value, comparator=comparator)
    return None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    return None


def _coerce_confidence(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if 1.0 < value <= 100.0:
        value = value / 100.0
    if 0.0 <= value <= 1.0:
        return float(value)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _first_nested_number(data: Any, key: str = "") -> tuple[str, float] | None:
    """Depth-first search for the first numeric leaf."""
    if _is_number(data):
        return key, float(data)
    if isinstance(data, dict):
        for child_key, child in data.items():
            found = _first_nested_number(child, str(child_key))
            if found is not None:
                return found
    elif isinstance(data, list):
        for child in data:
            found = _first_nested_number(child, key)
            if found is not None:
                return found
    return None


def _parse_numeric_string(text: str) -> float | None:
    """Read values like "$95.50" or "95.5 USD"."""
    cleaned = re.sub(r"[$€£¥,]", "", text)
    match = _STRING_VALUE_RE.search(cleaned)
    return float(match.group(0)) if match else None


def _decode(raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise ResponseParseError(f"Response is not valid JSON: {e}") from e


class ExplicitAnswerParser(ResponseParser):
    """Accepts only payloads that state the outcome directly."""

    @property
    def parser_name(self) -> str:
        return "explicit"

    def parse(self, raw: bytes, question: str) -> ParsedAnswer:
        answer = self.read(_decode(raw))
        if answer is None:
            raise ResponseParseError("No explicit outcome field in response")
        return answer

    @staticmethod
    def read(data: Any) -> ParsedAnswer | None:
        if isinstance(data, bool):
            return ParsedAnswer(outcome=data, confidence=DEFAULT_ANSWER_CONFIDENCE)
        if not isinstance(data, dict):
            return None
        for field_name in ANSWER_FIELDS:
            if field_name not in data:
                continue
            outcome = _coerce_bool(data[field_name])
            if outcome is None:
                continue
            confidence = DEFAULT_ANSWER_CONFIDENCE
            for conf_field in CONFIDENCE_FIELDS:
                parsed = _coerce_confidence(data.get(conf_field))
                if parsed is not None:
                    confidence = parsed
                    break
            return ParsedAnswer(outcome=outcome, confidence=confidence)
        return None


class NumericThresholdParser(ResponseParser):
    """
    Reads a number from the payload and compares it with the question.

    Confidence starts at 0.85 and grows by a tenth of the relative
    distance from the threshold, capped at 0.95.
    """

    @property
    def parser_name(self) -> str:
        return "numeric"

    def parse(self, raw: bytes, question: str) -> ParsedAnswer:
        return self.read(_decode(raw), question)

    def read(self, data: Any, question: str) -> ParsedAnswer:
        reading = self._extract_value(data)
        if reading is None:
            raise ResponseParseError("No numeric value in response")
        field_name, value = reading
        if not math.isfinite(value):
            raise ResponseParseError(f"Non-finite numeric value in response: {value}")

        threshold = extract_threshold(question)
        if threshold is not None:
            compare_value = value
            if threshold.is_percent and 0.0 <= value <= 1.0:
                compare_value = value * 100.0
            outcome = threshold.evaluate(compare_value)
            if threshold.value == 0:
                confidence = BASE_NUMERIC_CONFIDENCE
            else:
                distance = abs(compare_value - threshold.value) / abs(threshold.value)
                confidence = BASE_NUMERIC_CONFIDENCE + distance * 0.1
            return ParsedAnswer(
                outcome=outcome,
                confidence=min(confidence, MAX_NUMERIC_CONFIDENCE),
                value=value,
            )

        if any(hint in field_name.lower() for hint in PROBABILITY_HINTS):
            probability = value / 100.0 if 1.0 < value <= 100.0 else value
            if 0.0 <= probability <= 1.0:
                return ParsedAnswer(
                    outcome=probability > 0.5,
                    confidence=min(max(probability, 1.0 - probability), MAX_NUMERIC_CONFIDENCE),
                    value=value,
                )

        raise ResponseParseError(
            f"Numeric value {value} found but the question states no threshold"
        )

    @staticmethod
    def _extract_value(data: Any) -> tuple[str, float] | None:
        if isinstance(data, dict):
            for field_name in NUMERIC_FIELDS:
                if _is_number(data.get(field_name)):
                    return field_name, float(data[field_name])
            for field_name in NUMERIC_FIELDS:
                if isinstance(data.get(field_name), str):
                    parsed = _parse_numeric_string(data[field_name])
                    if parsed is not None:
                        return field_name, parsed
        found = _first_nested_number(data)
        if found is not None:
            return found
        if isinstance(data, str):
            parsed = _parse_numeric_string(data)
            if parsed is not None:
                return "", parsed
        return None


class GenericResponseParser(ResponseParser):
    """Explicit answer first, numeric threshold second."""

    def __init__(self) -> None:
        self._numeric = NumericThresholdParser()

    @property
    def parser_name(self) -> str:
        return "generic"

    def parse(self, raw: bytes, question: str) -> ParsedAnswer:
        data = _decode(raw)
        answer = ExplicitAnswerParser.read(data)
        if answer is not None:
            return answer
        return self._numeric.read(data, question)


class ParserRegistry:
    """Named source-specific parsers with a generic fallback."""

    def __init__(self, default: ResponseParser | None = None) -> None:
        self._default = default or GenericResponseParser()
        self._parsers: dict[str, ResponseParser] = {}
        for parser in (self._default, ExplicitAnswerParser(), NumericThresholdParser()):
            self.register(parser)

    def register(self, parser: ResponseParser, name: str | None = None) -> None:
        self._parsers[name or parser.parser_name] = parser

    def resolve(self, name: str | None) -> ResponseParser:
        """Return the named parser, or the default when unnamed or unknown."""
        if name is None:
            return self._default
        parser = self._parsers.get(name)
        if parser is None:
            logger.warning(f"Unknown parser {name!r}; using {self._default.parser_name}")
            return self._default
        return parser

    @property
    def names(self) -> list[str]:
        return sorted(self._parsers)
