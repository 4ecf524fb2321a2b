"""
Unit Tests for Domain Entities and Results
==========================================
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from permissionless_oracle.domain.entities import (
    CandidateSource,
    DataPoint,
    Question,
    Source,
    Topic,
    slugify,
)
from permissionless_oracle.domain.errors import InsufficientSources, NoConsensus
from permissionless_oracle.domain.results import (
    ConsensusResult,
    QueryErrorKind,
    ResearchOptions,
    SourceQueryResult,
)


class TestQuestion:
    """Tests for question hashing."""

    def test_hash_ignores_case_and_whitespace(self) -> None:
        """Trivially different phrasings share a content hash."""
        a = Question.from_text("Will  Bitcoin exceed $100k?")
        b = Question.from_text("  will bitcoin EXCEED $100k? ")

        assert a.content_hash == b.content_hash
        assert len(a.content_hash) == 64

    def test_different_questions_hash_differently(self) -> None:
        a = Question.from_text("Will it rain in Paris tomorrow?")
        b = Question.from_text("Will it rain in London tomorrow?")

        assert a.content_hash != b.content_hash

    def test_empty_question_rejected(self) -> None:
        with pytest.raises(ValueError):
            Question.from_text("   ")


class TestTopicAndSource:
    """Tests for category normalization."""

    def test_topic_category_lowercased(self) -> None:
        assert Topic(category="  Crypto ").category == "crypto"

    def test_blank_topic_category_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Topic(category="   ")

    def test_source_categories_normalized(self) -> None:
        source = Source(id="s", endpoint="https://s.example", categories=["Crypto", " FINANCE ", ""])

        assert source.categories == frozenset({"crypto", "finance"})
        assert source.serves("CRYPTO")
        assert not source.serves("weather")

    def test_candidate_to_source_adds_category(self) -> None:
        candidate = CandidateSource(
            name="Oil Price API",
            endpoint="https://oil.example/v1",
            categories=["commodities"],
            cost_per_call=0.03,
        )

        source = candidate.to_source("Energy")

        assert source.id == "oil-price-api"
        assert source.categories == frozenset({"commodities", "energy"})
        assert source.discovered is True
        assert source.cost_per_call == 0.03

    def test_slugify(self) -> None:
        assert slugify("APIs.guru: Weather!") == "apis-guru-weather"


class TestDataPoint:
    """Tests for DataPoint constraints."""

    def test_encoded_outcome(self) -> None:
        yes = DataPoint(source_id="a", raw_response_hash="h", outcome=True, confidence=0.8)
        no = DataPoint(source_id="a", raw_response_hash="h", outcome=False, confidence=0.8)

        assert yes.encoded == 1
        assert no.encoded == 0

    def test_confidence_bounds(self) -> None:
        with pytest.raises(ValidationError):
            DataPoint(source_id="a", raw_response_hash="h", outcome=True, confidence=1.5)


class TestResults:
    """Tests for result value objects."""

    def test_query_result_requires_exactly_one(self) -> None:
        with pytest.raises(ValidationError):
            SourceQueryResult(source_id="a")

    def test_query_result_failure(self) -> None:
        result = SourceQueryResult.failure("a", QueryErrorKind.TIMEOUT, "slow", cost=0.02)

        assert not result.ok
        assert result.error_kind is QueryErrorKind.TIMEOUT
        assert result.cost == 0.02

    def test_research_options_fanout_cap(self) -> None:
        with pytest.raises(ValidationError):
            ResearchOptions(max_sources=11)

    def test_consensus_result_sets_disjoint(self) -> None:
        with pytest.raises(ValidationError):
            ConsensusResult(
                question_hash="h",
                question="q",
                category="crypto",
                outcome=True,
                confidence=0.9,
                consensus_strength=1.0,
                included_sources=["a", "b"],
                excluded_outliers=["b"],
                proof_hash="p",
            )


class TestErrors:
    """Tests for research error context."""

    def test_insufficient_sources_context(self) -> None:
        error = InsufficientSources("too few", category="energy", available=2, required=5)

        context = error.context()

        assert context["error"] == "InsufficientSources"
        assert context["category"] == "energy"
        assert context["available"] == 2
        assert context["required"] == 5

    def test_no_consensus_context(self) -> None:
        error = NoConsensus("nobody", category="crypto", sources_attempted=5, sources_succeeded=0)

        assert error.context()["sources_attempted"] == 5
        assert error.context()["sources_succeeded"] == 0
