"""
LLM Question Classifier
=======================

Classifier and search-query generator backed by an LLMProvider.
Both prompts ask for a JSON object and validate the reply before use.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from permissionless_oracle.domain.entities import Topic
from permissionless_oracle.ports.classifier import (
    ClassificationError,
    Classifier,
    SearchQueryGenerator,
)
from permissionless_oracle.ports.llm_provider import LLMMessage, LLMProviderError

if TYPE_CHECKING:
    from permissionless_oracle.domain.services.source_catalog import SourceCatalog
    from permissionless_oracle.ports.llm_provider import LLMProvider

logger = logging.getLogger(__name__)

CLASSIFY_SYSTEM_PROMPT = (
    "You are an expert at analyzing prediction-market questions and routing them "
    "to data sources. Always respond with valid JSON."
)

CLASSIFY_PROMPT_TEMPLATE = """You are a data source router for a prediction market platform.

QUESTION: "{question}"

KNOWN CATEGORIES: {categories}

YOUR TASK:
1. Determine the question's primary category. Prefer a known category; use a new
   single lowercase word only if none fits (e.g. "energy").
2. Extract the key keywords from the question.
3. Provide your confidence (0-1) in this analysis.
4. Explain your reasoning briefly.

Respond in JSON format:
{{
  "category": "primary category",
  "keywords": ["keyword1", "keyword2"],
  "confidence": 0.95,
  "reasoning": "why this category fits"
}}"""

QUERY_PROMPT_TEMPLATE = """Generate 3-5 search queries to find public APIs that could answer this prediction market question.

Question: "{question}"
Category: {category}
Keywords: {keywords}

Examples:
- Oil prices: ["oil prices API", "commodity prices API", "energy market data"]
- NFL scores: ["NFL API", "football scores API", "sports data API"]

Respond in JSON format: {{"queries": ["query1", "query2", "query3"]}}"""

DEFAULT_CATEGORIES = (
    "crypto, stocks, economics, energy, weather, sports, politics, news, general"
)


def _loads_object(content: str) -> dict[str, Any]:
    """Parse a JSON object, tolerating markdown code fences around it."""
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in LLM reply")
    data = json.loads(text[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("LLM reply is not a JSON object")
    return data


class LLMClassifier(Classifier, SearchQueryGenerator):
    """Classifies questions and generates discovery queries with an LLM."""

    def __init__(
        self,
        llm: LLMProvider,
        catalog: SourceCatalog | None = None,
        *,
        temperature: float = 0.3,
        max_tokens: int = 400,
    ) -> None:
        self._llm = llm
        self._catalog = catalog
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def classifier_name(self) -> str:
        return f"llm:{self._llm.model_name}"

    def _known_categories(self) -> str:
        if self._catalog is None:
            return DEFAULT_CATEGORIES
        categories = sorted(self._catalog.categories())
        return ", ".join(categories) if categories else DEFAULT_CATEGORIES

    async def classify(self, question_text: str) -> Topic:
        prompt = CLASSIFY_PROMPT_TEMPLATE.format(
            question=question_text.strip(),
            categories=self._known_categories(),
        )
        data = await self._ask(prompt)

        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            keywords = [str(keywords)]
        try:
            topic = Topic(
                category=str(data.get("category") or ""),
                keywords=[str(k) for k in keywords if str(k).strip()],
                reasoning=str(data.get("reasoning") or ""),
                confidence=float(data.get("confidence", 0.8)),
            )
        except (ValidationError, TypeError, ValueError) as e:
            raise ClassificationError(f"LLM returned an invalid classification: {e}") from e

        logger.debug(f"LLM classified question as '{topic.category}' ({topic.confidence:.2f})")
        return topic

    async def generate_queries(self, topic: Topic, question: str | None = None) -> list[str]:
        prompt = QUERY_PROMPT_TEMPLATE.format(
            question=(question or topic.category).strip(),
            category=topic.category,
            keywords=", ".join(topic.keywords) or "none",
        )
        data = await self._ask(prompt)
        queries = data.get("queries")
        if not isinstance(queries, list):
            raise ClassificationError("LLM reply has no 'queries' list")
        return [str(q) for q in queries if isinstance(q, str) and q.strip()]

    async def _ask(self, prompt: str) -> dict[str, Any]:
        messages = [
            LLMMessage(role="system", content=CLASSIFY_SYSTEM_PROMPT),
            LLMMessage(role="user", content=prompt),
        ]
        try:
            response = await self._llm.complete(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                json_mode=True,
            )
        except LLMProviderError as e:
            raise ClassificationError(str(e)) from e

        try:
            return _loads_object(response.content)
        except ValueError as e:
            raise ClassificationError(f"Unparseable LLM reply: {e}") from e
