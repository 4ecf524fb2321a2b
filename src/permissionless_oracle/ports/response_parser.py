"""
ResponseParser Port
===================

Abstract interface turning a source's raw bytes into a yes/no reading
for a question.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ParsedAnswer:
    """Outcome and confidence read from one raw response."""

    outcome: bool
    confidence: float  # 0.0-1.0
    value: float | None = None  # numeric reading, when the outcome was derived from one


class ResponseParser(ABC):
    """Port for response parsing."""

    @abstractmethod
    def parse(self, raw: bytes, question: str) -> ParsedAnswer:
        """
        Parse a raw response.

        Raises:
            ResponseParseError: If no outcome can be read.
        """
        ...

    @property
    def parser_name(self) -> str:
        return type(self).__name__


class ResponseParseError(Exception):
    """Raised when a response cannot be turned into an outcome."""

    pass
