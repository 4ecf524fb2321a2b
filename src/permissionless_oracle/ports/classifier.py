"""
Classifier Port
===============

Abstract interface mapping free question text to a routing Topic.
The engine treats implementations as black boxes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import Topic


class Classifier(ABC):
    """
    Port for question classification.

    Any stable classifier satisfying ``classify`` is substitutable:
    an LLM prompt, a keyword router or a fixed table in tests.
    """

    @abstractmethod
    async def classify(self, question_text: str) -> Topic:
        """
        Classify a question into a category with keywords.

        Args:
            question_text: The question as asked.

        Returns:
            Topic with category, keywords and reasoning.

        Raises:
            ClassificationError: If no category can be produced.
        """
        ...

    @property
    def classifier_name(self) -> str:
        """Name used in logs and proof metadata."""
        return type(self).__name__


class SearchQueryGenerator(ABC):
    """Port for turning a topic into directory search phrases."""

    @abstractmethod
    async def generate_queries(self, topic: Topic, question: str | None = None) -> list[str]:
        """
        Produce search queries for API directories.

        Raises:
            ClassificationError: If generation fails.
        """
        ...


class ClassificationError(Exception):
    """Raised when a classifier cannot produce a topic."""

    pass
