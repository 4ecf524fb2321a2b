"""
Domain Errors
=============

Errors raised by the engine services. The three research errors are
fatal to a single research call and carry enough context for a caller
to see why no answer was produced. Per-source failures never surface
here; they are recorded as SourceQueryResult values instead.
"""

from __future__ import annotations

from typing import Any


class OracleError(Exception):
    """Base class for all engine errors."""

    pass


class ResearchError(OracleError):
    """A research call ended without a consensus result."""

    def __init__(
        self,
        message: str,
        *,
        category: str | None = None,
        sources_attempted: int = 0,
        sources_succeeded: int = 0,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.sources_attempted = sources_attempted
        self.sources_succeeded = sources_succeeded

    def context(self) -> dict[str, Any]:
        """Diagnostic context for logs and API error bodies."""
        return {
            "error": type(self).__name__,
            "message": str(self),
            "category": self.category,
            "sources_attempted": self.sources_attempted,
            "sources_succeeded": self.sources_succeeded,
        }


class ClassificationFailed(ResearchError):
    """The classifier could not map the question to a category."""

    pass


class InsufficientSources(ResearchError):
    """Fewer than the required number of sources exist, even after discovery."""

    def __init__(
        self,
        message: str,
        *,
        category: str | None = None,
        available: int = 0,
        required: int = 0,
    ) -> None:
        super().__init__(message, category=category)
        self.available = available
        self.required = required

    def context(self) -> dict[str, Any]:
        data = super().context()
        data.update(available=self.available, required=self.required)
        return data


class NoConsensus(ResearchError):
    """No inlier answers remained to vote on."""

    pass


class SourceRegistrationError(OracleError):
    """A source failed catalog validation."""

    pass


class UnknownSourceError(OracleError):
    """The source id is not present in the catalog."""

    pass
