"""
Question Router - Keyword Classification
========================================

Deterministic question classification and search-query expansion.

Used as:
1. The fallback classifier when the LLM classifier is unavailable or fails
2. The deterministic query expander for discovery when no LLM query
   generator is configured
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter
from enum import Enum

from permissionless_oracle.domain.entities import Topic
from permissionless_oracle.ports.classifier import (
    ClassificationError,
    Classifier,
    SearchQueryGenerator,
)

logger = logging.getLogger(__name__)


class QuestionCategory(Enum):
    """Categories the keyword router can detect."""

    CRYPTO = "crypto"
    STOCKS = "stocks"
    ECONOMICS = "economics"
    ENERGY = "energy"
    WEATHER = "weather"
    SPORTS = "sports"
    POLITICS = "politics"
    NEWS = "news"
    GENERAL = "general"


# Category detection patterns
CATEGORY_PATTERNS: dict[QuestionCategory, list[str]] = {
    QuestionCategory.CRYPTO: [
        r"\b(btc|bitcoin|eth|ethereum|crypto|cryptocurrency|coin|token|defi|nft|"
        r"solana|sol|bnb|xrp|dogecoin|stablecoin|altcoin|blockchain)\b",
    ],
    QuestionCategory.STOCKS: [
        r"\b(stock|stocks|share price|tesla|tsla|apple|aapl|nvidia|s&p|nasdaq|"
        r"dow jones|trading|ipo|earnings|market cap)\b",
    ],
    QuestionCategory.ECONOMICS: [
        r"\b(gdp|inflation|cpi|unemployment|recession|interest rates?|"
        r"federal reserve|fed|treasury|fiscal|monetary)\b",
    ],
    QuestionCategory.ENERGY: [
        r"\b(oil|crude|brent|wti|natural gas|opec|energy|electricity|solar|"
        r"wind power|barrel|gasoline|petrol|power grid)\b",
    ],
    QuestionCategory.WEATHER: [
        r"\b(rain|snow|temperature|weather|storm|hurricane|forecast|heatwave|"
        r"rainfall|degrees|celsius|fahrenheit)\b",
    ],
    QuestionCategory.SPORTS: [
        r"\b(nfl|nba|mlb|nhl|soccer|football|championship|super bowl|world cup|"
        r"playoffs?|match|game|team|league|tournament)\b",
    ],
    QuestionCategory.POLITICS: [
        r"\b(election|elected|president|senate|congress|parliament|vote|"
        r"referendum|prime minister|candidate|poll)\b",
    ],
    QuestionCategory.NEWS: [
        r"\b(news|announce|announced|launch|launched|regulation|government|"
        r"approve|approved|ban|banned)\b",
    ],
}

STOPWORDS = frozenset(
    {
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can", "to", "of", "in",
        "for", "on", "with", "at", "by", "from", "as", "into", "before",
        "after", "above", "below", "under", "over", "more", "than", "less",
        "exceed", "reach", "hit", "and", "but", "or", "if", "that", "which",
        "who", "what", "this", "these", "those", "it", "its", "end", "year",
        "yes", "not", "any", "get",
    }
)

MIN_QUERIES = 3
MAX_QUERIES = 5


def extract_keywords(text: str, limit: int = 10) -> list[str]:
    """Extract significant keywords, most frequent first."""
    words = re.findall(r"\b[a-zA-Z][a-zA-Z0-9&]{2,}\b", text.lower())
    freq = Counter(w for w in words if w not in STOPWORDS)
    return [word for word, _ in freq.most_common(limit)]


def expand_search_queries(topic: Topic) -> list[str]:
    """
    Deterministic keyword expansion into 3-5 unique, non-empty queries.

    The category always contributes ``"{category} API"`` and
    ``"{category} data"``; keywords fill the remaining slots.
    """
    category = topic.category
    candidates = [f"{category} API", f"{category} data"]
    for keyword in topic.keywords:
        keyword = keyword.strip().lower()
        if keyword and keyword != category:
            candidates.append(f"{keyword} API")
    candidates.extend([category, f"{category} price API", f"{category} statistics"])
    return normalize_queries(candidates)


def normalize_queries(queries: list[str]) -> list[str]:
    """Strip, drop empties and duplicates (case-insensitive), cap at five."""
    seen: set[str] = set()
    result: list[str] = []
    for query in queries:
        cleaned = " ".join(query.split())
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
        if len(result) == MAX_QUERIES:
            break
    return result


class KeywordClassifier(Classifier, SearchQueryGenerator):
    """
    Regex-based question classifier.

    Scores each category by pattern hits and picks the best; questions
    matching nothing are routed to ``general``.
    """

    def __init__(self) -> None:
        """Initialize the router with compiled patterns."""
        self._patterns = {
            category: [re.compile(p, re.IGNORECASE) for p in patterns]
            for category, patterns in CATEGORY_PATTERNS.items()
        }

    @property
    def classifier_name(self) -> str:
        return "keyword"

    async def classify(self, question_text: str) -> Topic:
        return self.classify_sync(question_text)

    def classify_sync(self, question_text: str) -> Topic:
        text = question_text.strip()
        if not text:
            raise ClassificationError("Cannot classify an empty question")

        category, confidence, hits = self._score(text)
        keywords = extract_keywords(text)
        reasoning = (
            f"Matched {hits} {category.value} keyword(s)"
            if hits
            else "No category keywords matched; routed to general"
        )
        return Topic(
            category=category.value,
            keywords=keywords,
            reasoning=reasoning,
            confidence=confidence,
        )

    async def generate_queries(self, topic: Topic, question: str | None = None) -> list[str]:
        return expand_search_queries(topic)

    def _score(self, text: str) -> tuple[QuestionCategory, float, int]:
        scores: dict[QuestionCategory, int] = {}
        for category, patterns in self._patterns.items():
            scores[category] = sum(len(p.findall(text)) for p in patterns)

        if not any(scores.values()):
            return QuestionCategory.GENERAL, 0.5, 0

        # Ties resolve to the earlier (more specific) category
        best = max(scores, key=lambda c: scores[c])
        best_score = scores[best]
        total_words = len(text.split())
        confidence = min(0.95, 0.6 + (best_score / max(total_words, 1)) * 2)
        return best, confidence, best_score


class FallbackClassifier(Classifier):
    """
    Try ``primary``; on any classification error use ``fallback``.

    ``primary_timeout`` bounds the primary on its own so a hung LLM still
    leaves time for the fallback inside the caller's overall timeout.
    """

    def __init__(
        self,
        primary: Classifier,
        fallback: Classifier,
        primary_timeout: float | None = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._primary_timeout = primary_timeout

    @property
    def classifier_name(self) -> str:
        return f"{self._primary.classifier_name}+{self._fallback.classifier_name}"

    async def classify(self, question_text: str) -> Topic:
        try:
            return await asyncio.wait_for(
                self._primary.classify(question_text), timeout=self._primary_timeout
            )
        except TimeoutError:
            logger.warning(
                f"{self._primary.classifier_name} classification timed out after "
                f"{self._primary_timeout}s; falling back to {self._fallback.classifier_name}"
            )
            return await self._fallback.classify(question_text)
        except ClassificationError as e:
            logger.warning(
                f"{self._primary.classifier_name} classification failed ({e}); "
                f"falling back to {self._fallback.classifier_name}"
            )
            return await self._fallback.classify(question_text)


# Singleton instance
_keyword_classifier: KeywordClassifier | None = None


def get_keyword_classifier() -> KeywordClassifier:
    """Get or create the singleton keyword classifier."""
    global _keyword_classifier
    if _keyword_classifier is None:
        _keyword_classifier = KeywordClassifier()
    return _keyword_classifier
