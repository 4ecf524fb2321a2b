"""
LLMProvider Port
================

Abstract interface for language model inference.
Used by the LLM-backed classifier and search-query generator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class LLMResponse:
    """Response from an LLM inference call."""

    content: str
    model: str
    usage: dict[str, int] | None = None  # tokens: prompt, completion, total
    finish_reason: str | None = None
    raw_response: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class LLMMessage:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


class LLMProvider(ABC):
    """
    Port for LLM inference operations.

    Implementations might wrap:
    - OpenAI API
    - vLLM local inference
    - Any other OpenAI-compatible server
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion for the given messages.

        Args:
            messages: Conversation history.
            temperature: Sampling temperature (0.0 = deterministic).
            max_tokens: Maximum tokens to generate.
            json_mode: Ask the backend for a JSON object response.

        Returns:
            LLM response with generated content.

        Raises:
            LLMProviderError: If inference fails.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the LLM provider is operational."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the name/ID of the model being used."""
        ...


class LLMProviderError(Exception):
    """Raised when an LLM call fails."""

    pass
