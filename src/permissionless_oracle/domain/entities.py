"""
Domain Entities
===============

Core business objects: questions, topics, sources and the data points
collected from them. These are immutable value objects with no
infrastructure dependencies.
"""

from __future__ import annotations

import hashlib
import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_question_text(text: str) -> str:
    """Collapse whitespace and casefold so trivially different phrasings hash alike."""
    return _WHITESPACE_RE.sub(" ", text.strip()).casefold()


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


def _normalize_categories(values: Any) -> frozenset[str]:
    if isinstance(values, str):
        values = [values]
    return frozenset(v.strip().lower() for v in values if v and v.strip())


class Question(BaseModel):
    """
    A prediction-market question.

    ``content_hash`` is the SHA-256 of the normalized text and serves as
    the correlation key for every record produced while researching it.
    """

    text: str = Field(..., min_length=1, description="Question as asked")
    content_hash: str = Field(..., description="SHA-256 hex of the normalized text")

    model_config = {"frozen": True}

    @classmethod
    def from_text(cls, text: str) -> Question:
        normalized = normalize_question_text(text)
        if not normalized:
            raise ValueError("Question text must not be empty")
        digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
        return cls(text=text.strip(), content_hash=digest)


class Topic(BaseModel):
    """Classification of a question, produced by a Classifier."""

    category: str = Field(..., min_length=1, description="Routing category, e.g. 'crypto'")
    keywords: list[str] = Field(default_factory=list)
    reasoning: str = Field(default="")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("category must not be blank")
        return value


class Source(BaseModel):
    """
    A data source known to the catalog.

    Sources are never deleted; ``active=False`` hides them from routing
    while keeping their audit history queryable.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    endpoint: str = Field(default="", description="Base URL queried for answers")
    categories: frozenset[str] = Field(default_factory=frozenset)
    cost_per_call: float = Field(default=0.0, description="Cost charged per query")
    description: str = Field(default="")
    parser: str | None = Field(
        default=None, description="Name of a source-specific response parser"
    )
    discovered: bool = Field(default=False, description="Registered by discovery")
    active: bool = Field(default=True)
    registered_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}

    @field_validator("categories", mode="before")
    @classmethod
    def _normalize_categories(cls, value: Any) -> frozenset[str]:
        return _normalize_categories(value)

    def serves(self, category: str) -> bool:
        return category.strip().lower() in self.categories


class CandidateSource(BaseModel):
    """An unvalidated source descriptor returned by a directory search."""

    id: str | None = Field(default=None)
    name: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1)
    description: str = Field(default="")
    categories: frozenset[str] = Field(default_factory=frozenset)
    cost_per_call: float = Field(default=0.03, ge=0.0)
    directory: str = Field(default="", description="Directory that returned this candidate")

    model_config = {"frozen": True}

    @field_validator("categories", mode="before")
    @classmethod
    def _normalize_categories(cls, value: Any) -> frozenset[str]:
        return _normalize_categories(value)

    @property
    def source_id(self) -> str:
        return self.id or slugify(self.name) or slugify(self.endpoint)

    def to_source(self, category: str) -> Source:
        """Build the catalog entry for this candidate, tagged with ``category``."""
        return Source(
            id=self.source_id,
            name=self.name,
            endpoint=self.endpoint,
            categories=self.categories | {category},
            cost_per_call=self.cost_per_call,
            description=self.description,
            discovered=True,
        )


class ReputationRecord(BaseModel):
    """Rolling performance statistics for one source."""

    source_id: str
    total_queries: int = Field(default=0, ge=0)
    correct_count: int = Field(default=0, ge=0)
    wrong_count: int = Field(default=0, ge=0)
    avg_response_time_ms: float = Field(default=0.0, ge=0.0)
    avg_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    last_updated: datetime | None = Field(default=None)

    model_config = {"frozen": True}


class OriginProof(BaseModel):
    """Evidence, produced by the fetcher, that bytes came from the claimed origin."""

    verified: bool = Field(default=False)
    domain: str = Field(default="")
    issuer: str | None = Field(default=None)
    fingerprint: str | None = Field(default=None)

    model_config = {"frozen": True}


class FetchedResponse(BaseModel):
    """Raw bytes returned by a source plus proof of their origin."""

    raw: bytes
    origin: OriginProof = Field(default_factory=OriginProof)

    model_config = {"frozen": True}


class PaymentToken(BaseModel):
    """Spend authorization for a single source query."""

    token: str
    source_id: str
    amount: float = Field(..., ge=0.0)
    issued_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}


class DataPoint(BaseModel):
    """The answer one source gave for one question."""

    source_id: str
    raw_response_hash: str = Field(..., description="ProofChain hash of the raw response")
    outcome: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    response_time_ms: float = Field(default=0.0, ge=0.0)
    timestamp: datetime = Field(default_factory=_utcnow)
    domain_verified: bool = Field(default=False)
    cost: float = Field(default=0.0, ge=0.0)

    model_config = {"frozen": True}

    @property
    def encoded(self) -> int:
        return 1 if self.outcome else 0


class ProofRecord(BaseModel):
    """A content-addressed blob stored in the proof chain."""

    hash: str
    payload: bytes

    model_config = {"frozen": True}
