"""
Pytest Fixtures
===============

Shared fixtures and port fakes for all test modules.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from permissionless_oracle.adapters.outbound.payment_ledger import BudgetPaymentAuthorizer
from permissionless_oracle.adapters.outbound.proof_store_memory import InMemoryProofStore
from permissionless_oracle.domain.entities import (
    CandidateSource,
    FetchedResponse,
    OriginProof,
    Source,
    Topic,
)
from permissionless_oracle.domain.services.consensus_engine import ConsensusEngine
from permissionless_oracle.domain.services.discovery_engine import DiscoveryEngine
from permissionless_oracle.domain.services.proof_chain import ProofChain
from permissionless_oracle.domain.services.reputation_tracker import ReputationTracker
from permissionless_oracle.domain.services.source_catalog import SourceCatalog
from permissionless_oracle.ports.classifier import ClassificationError, Classifier
from permissionless_oracle.ports.directory_search import DirectorySearch, DirectorySearchError
from permissionless_oracle.ports.fetcher import Fetcher, FetchError

BTC_QUESTION = "Will Bitcoin exceed $100,000 by end of 2026?"


# -----------------------------------------------------------------------------
# Port Fakes
# -----------------------------------------------------------------------------


class FakeClassifier(Classifier):
    """Returns a fixed topic, or raises/hangs on demand."""

    def __init__(
        self,
        topic: Topic | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.topic = topic or Topic(category="crypto", keywords=["bitcoin"])
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def classify(self, question_text: str) -> Topic:
        self.calls.append(question_text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.topic


class FakeFetcher(Fetcher):
    """
    Serves canned payloads per endpoint.

    A response value may be bytes, a JSON-serializable object, an
    exception to raise, or a ``(delay_seconds, value)`` tuple.
    """

    def __init__(self, responses: dict[str, Any] | None = None, *, verified: bool = True) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.verified = verified
        self.calls: list[str] = []
        self.cancelled: list[str] = []

    async def fetch_verified(self, endpoint: str, question: str) -> FetchedResponse:
        self.calls.append(endpoint)
        if endpoint not in self.responses:
            raise FetchError(f"No route to {endpoint}")
        value = self.responses[endpoint]
        if isinstance(value, tuple):
            delay, value = value
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                self.cancelled.append(endpoint)
                raise
        if isinstance(value, Exception):
            raise value
        raw = value if isinstance(value, bytes) else json.dumps(value).encode("utf-8")
        return FetchedResponse(
            raw=raw,
            origin=OriginProof(verified=self.verified, domain=endpoint.split("/")[2]),
        )


class FakeDirectory(DirectorySearch):
    """Directory returning fixed candidates (or failing)."""

    def __init__(
        self,
        name: str,
        candidates: list[CandidateSource] | None = None,
        *,
        search_cost: float = 0.01,
        charged: float | None = None,
        error: Exception | None = None,
    ) -> None:
        self._name = name
        self._search_cost = search_cost
        self._charged = search_cost if charged is None else charged
        self.candidates = list(candidates or [])
        self.error = error
        self.calls: list[tuple[list[str], str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def search_cost(self) -> float:
        return self._search_cost

    async def search(
        self, queries: list[str], category: str
    ) -> tuple[list[CandidateSource], float]:
        self.calls.append((list(queries), category))
        if self.error is not None:
            raise self.error
        return list(self.candidates), self._charged


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------


def _make_source(
    source_id: str,
    categories: list[str] | None = None,
    *,
    cost: float = 0.02,
    parser: str | None = None,
) -> Source:
    return Source(
        id=source_id,
        name=source_id.title(),
        endpoint=f"https://{source_id}.example.com/api",
        categories=categories or ["crypto"],
        cost_per_call=cost,
        parser=parser,
    )


@pytest.fixture
def make_source() -> Callable[..., Source]:
    """Factory for catalog sources with https endpoints."""
    return _make_source


@pytest.fixture
def make_candidate() -> Callable[..., CandidateSource]:
    """Factory for directory candidates."""

    def _make(name: str, *, cost: float = 0.03, categories: list[str] | None = None) -> CandidateSource:
        return CandidateSource(
            name=name,
            endpoint=f"https://{name.lower()}.example.org/v1",
            description=f"{name} data feed",
            categories=categories or [],
            cost_per_call=cost,
        )

    return _make


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def classifier_factory() -> Callable[..., FakeClassifier]:
    return FakeClassifier


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def directory_factory() -> Callable[..., FakeDirectory]:
    return FakeDirectory


@pytest.fixture
def classification_error() -> type[ClassificationError]:
    return ClassificationError


@pytest.fixture
def directory_error() -> type[DirectorySearchError]:
    return DirectorySearchError


# -----------------------------------------------------------------------------
# Engine Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def catalog() -> SourceCatalog:
    return SourceCatalog()


@pytest.fixture
def crypto_catalog(catalog: SourceCatalog) -> SourceCatalog:
    """Six crypto sources, ``src1`` through ``src6``, 0.02 per call."""
    for i in range(1, 7):
        catalog.register(_make_source(f"src{i}"))
    return catalog


@pytest.fixture
def reputation(catalog: SourceCatalog) -> ReputationTracker:
    return ReputationTracker(catalog)


@pytest.fixture
def proof_store() -> InMemoryProofStore:
    return InMemoryProofStore()


@pytest.fixture
def proof_chain(proof_store: InMemoryProofStore) -> ProofChain:
    return ProofChain(proof_store)


@pytest.fixture
def payment() -> BudgetPaymentAuthorizer:
    return BudgetPaymentAuthorizer()


@pytest.fixture
def discovery_factory(
    catalog: SourceCatalog,
    fake_fetcher: FakeFetcher,
    payment: BudgetPaymentAuthorizer,
) -> Callable[..., DiscoveryEngine]:
    """Build a discovery engine over the shared catalog and fetcher."""

    def _make(directories: list[DirectorySearch] | None = None, **kwargs: Any) -> DiscoveryEngine:
        kwargs.setdefault("payment_authorizer", payment)
        return DiscoveryEngine(catalog, fake_fetcher, directories, **kwargs)

    return _make


@pytest.fixture
def engine_factory(
    catalog: SourceCatalog,
    reputation: ReputationTracker,
    proof_chain: ProofChain,
    fake_classifier: FakeClassifier,
    fake_fetcher: FakeFetcher,
    payment: BudgetPaymentAuthorizer,
) -> Callable[..., ConsensusEngine]:
    """Build a consensus engine over the shared fixtures; kwargs override."""

    def _make(**kwargs: Any) -> ConsensusEngine:
        args: dict[str, Any] = {
            "catalog": catalog,
            "reputation": reputation,
            "proof_chain": proof_chain,
            "classifier": fake_classifier,
            "fetcher": fake_fetcher,
            "payment_authorizer": payment,
        }
        args.update(kwargs)
        return ConsensusEngine(**args)

    return _make


@pytest.fixture
def crypto_answers(crypto_catalog: SourceCatalog, fake_fetcher: FakeFetcher) -> FakeFetcher:
    """Five sources answer yes, ``src6`` dissents."""
    for i in range(1, 6):
        fake_fetcher.responses[f"https://src{i}.example.com/api"] = {
            "outcome": True,
            "confidence": 0.9,
        }
    fake_fetcher.responses["https://src6.example.com/api"] = {"outcome": False, "confidence": 0.9}
    return fake_fetcher
