"""
OpenAI-Compatible LLM Adapter
=============================

Adapter for OpenAI-compatible LLM APIs (including vLLM, Ollama, etc.).
Backs the LLM classifier and the discovery query generator.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from permissionless_oracle.ports.llm_provider import (
    LLMMessage,
    LLMProvider,
    LLMProviderError,
    LLMResponse,
)

if TYPE_CHECKING:
    from permissionless_oracle.infrastructure.config import LLMSettings

logger = logging.getLogger(__name__)


class OpenAILLMAdapter(LLMProvider):
    """
    Adapter for OpenAI-compatible LLM inference APIs.

    Wraps the openai Python client for:
    - OpenAI API
    - Local vLLM inference
    - Ollama with OpenAI compatibility
    """

    def __init__(self, settings: LLMSettings) -> None:
        """
        Initialize the adapter with configuration.

        Args:
            settings: LLM connection settings.
        """
        self._settings = settings

        connection_limits = httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
            keepalive_expiry=30.0,
        )
        timeout_config = httpx.Timeout(
            connect=10.0,
            read=self._settings.timeout_seconds,
            write=30.0,
            pool=5.0,
        )
        self._http_client = httpx.AsyncClient(
            transport=httpx.AsyncHTTPTransport(retries=2),
            limits=connection_limits,
            timeout=timeout_config,
        )

        self._client = AsyncOpenAI(
            base_url=self._settings.base_url,
            api_key=self._settings.api_key.get_secret_value(),
            timeout=self._settings.timeout_seconds,
            max_retries=self._settings.max_retries,
            http_client=self._http_client,
        )
        self._model = settings.model

    @property
    def model_name(self) -> str:
        """Return the configured model name."""
        return self._model

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

        Raises:
            LLMProviderError: If inference fails.
        """
        try:
            kwargs: dict[str, object] = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            if max_tokens is not None:
                kwargs["max_tokens"] = max_tokens

            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": m.role, "content": m.content} for m in messages],  # type: ignore[misc]
                temperature=temperature,
                **kwargs,  # type: ignore[arg-type]
            )

            choice = response.choices[0]
            usage = None
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }

            return LLMResponse(
                content=choice.message.content or "",
                model=response.model,
                usage=usage,
                finish_reason=choice.finish_reason,
                raw_response=response.model_dump(),
            )

        except APIConnectionError as e:
            # Expected while the LLM is down; callers fall back to keyword routing
            logger.warning(f"LLM not available (will use fallback): {e}")
            raise LLMProviderError(f"Failed to connect to LLM: {e}") from e
        except APIStatusError as e:
            logger.error(f"LLM API error: {e.status_code} - {e.message}")
            raise LLMProviderError(f"LLM API error: {e.message}") from e
        except Exception as e:
            logger.error(f"Unexpected LLM error: {e}")
            raise LLMProviderError(f"Unexpected error: {e}") from e

    async def health_check(self) -> bool:
        """Check if the LLM API is reachable."""
        try:
            await self._client.models.list()
            return True
        except Exception as e:
            logger.warning(f"LLM health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.close()
