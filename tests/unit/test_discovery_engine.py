"""
Unit Tests for the Discovery Engine
===================================
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from permissionless_oracle.adapters.outbound.payment_ledger import BudgetPaymentAuthorizer
from permissionless_oracle.domain.entities import CandidateSource, Source, Topic
from permissionless_oracle.domain.results import DiscoveryStatus
from permissionless_oracle.domain.services.discovery_engine import DiscoveryEngine
from permissionless_oracle.domain.services.source_catalog import SourceCatalog
from permissionless_oracle.ports.directory_search import DirectorySearchError
from permissionless_oracle.ports.fetcher import FetchError

ENERGY = Topic(category="energy", keywords=["oil", "barrel"])


class TestDiscoveryEngine:
    """Tests for search, validation and registration."""

    @pytest.fixture
    def candidates(self, make_candidate: Callable[..., CandidateSource]) -> list[CandidateSource]:
        return [make_candidate("OilPrice"), make_candidate("EIA"), make_candidate("Broken")]

    @pytest.fixture
    def answering_fetcher(self, fake_fetcher: Any, candidates: list[CandidateSource]) -> Any:
        fake_fetcher.responses[candidates[0].endpoint] = {"price": 88.5}
        fake_fetcher.responses[candidates[1].endpoint] = {"value": 87.9}
        fake_fetcher.responses[candidates[2].endpoint] = FetchError("HTTP 500")
        return fake_fetcher

    @pytest.mark.asyncio
    async def test_registers_validated_candidates(
        self,
        catalog: SourceCatalog,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        engine = discovery_factory([directory_factory("Curated", candidates, search_cost=0.01)])

        result = await engine.discover(ENERGY, budget=0.5)

        assert sorted(result.registered) == ["eia", "oilprice"]
        assert result.status is DiscoveryStatus.COMPLETE
        assert result.candidates_tried == 3
        assert result.cost_spent == pytest.approx(0.01 + 3 * 0.03)
        energy = catalog.find_by_category("energy")
        assert sorted(s.id for s in energy) == ["eia", "oilprice"]
        assert all(s.discovered for s in energy)

    @pytest.mark.asyncio
    async def test_spend_never_exceeds_budget(
        self,
        catalog: SourceCatalog,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        engine = discovery_factory([directory_factory("Curated", candidates, search_cost=0.01)])

        result = await engine.discover(ENERGY, budget=0.05)

        assert result.cost_spent <= 0.05 + 1e-9
        assert result.candidates_tried == 1
        assert result.registered == ["oilprice"]

    @pytest.mark.asyncio
    async def test_directory_over_budget_not_searched(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
    ) -> None:
        expensive = directory_factory("Expensive", candidates, search_cost=1.0)
        engine = discovery_factory([expensive])

        result = await engine.discover(ENERGY, budget=0.1)

        assert expensive.calls == []
        assert result.registered == []
        assert result.cost_spent == 0.0

    @pytest.mark.asyncio
    async def test_failed_directory_is_skipped(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        broken = directory_factory("Broken", error=DirectorySearchError("HTTP 503"), search_cost=0.02)
        healthy = directory_factory("Curated", candidates[:1], search_cost=0.01)
        engine = discovery_factory([broken, healthy])

        result = await engine.discover(ENERGY, budget=0.5)

        assert result.status is DiscoveryStatus.PARTIAL_FAILURE
        assert result.failed_directories == ["Broken"]
        assert result.registered == ["oilprice"]
        # Failed search charged at its declared cost
        assert result.cost_spent == pytest.approx(0.02 + 0.01 + 0.03)

    @pytest.mark.asyncio
    async def test_every_directory_failing(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        answering_fetcher: Any,
    ) -> None:
        first = directory_factory("First", error=DirectorySearchError("HTTP 503"), search_cost=0.02)
        second = directory_factory("Second", error=DirectorySearchError("timeout"), search_cost=0.01)
        engine = discovery_factory([first, second])

        result = await engine.discover(ENERGY, budget=0.5)

        assert first.calls and second.calls
        assert result.status is DiscoveryStatus.PARTIAL_FAILURE
        assert result.failed_directories == ["First", "Second"]
        assert result.registered == []
        assert result.candidates_tried == 0
        assert answering_fetcher.calls == []
        assert result.cost_spent == pytest.approx(0.03)

    @pytest.mark.asyncio
    async def test_candidates_deduplicated_by_endpoint(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        first = directory_factory("First", candidates[:2])
        second = directory_factory("Second", candidates[:2])
        engine = discovery_factory([first, second])

        result = await engine.discover(ENERGY, budget=0.5)

        assert result.candidates_tried == 2
        assert len(engine.history("energy")) == 2
        assert engine.has_discovered("energy")

    @pytest.mark.asyncio
    async def test_max_candidates(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        second = directory_factory("Second", candidates)
        engine = discovery_factory([directory_factory("First", candidates[:1]), second])

        result = await engine.discover(ENERGY, budget=0.5, max_candidates=1)

        assert result.candidates_tried == 1
        assert second.calls == []

    @pytest.mark.asyncio
    async def test_known_source_not_revalidated(
        self,
        catalog: SourceCatalog,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        catalog.register(candidates[0].to_source("energy"))
        engine = discovery_factory([directory_factory("Curated", candidates[:2])])

        result = await engine.discover(ENERGY, budget=0.5)

        assert result.registered == ["eia"]
        assert candidates[0].endpoint not in answering_fetcher.calls

    @pytest.mark.asyncio
    async def test_existing_source_gains_category(
        self,
        catalog: SourceCatalog,
        make_source: Callable[..., Source],
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        existing = make_source("oilprice", ["commodities"])
        catalog.register(existing.model_copy(update={"endpoint": candidates[0].endpoint}))
        engine = discovery_factory([directory_factory("Curated", candidates[:1])])

        await engine.discover(ENERGY, budget=0.5)

        assert catalog.get("oilprice").categories == frozenset({"commodities", "energy"})

    @pytest.mark.asyncio
    async def test_non_json_and_slow_candidates_rejected(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        fake_fetcher: Any,
    ) -> None:
        fake_fetcher.responses[candidates[0].endpoint] = b"<html>not an api</html>"
        fake_fetcher.responses[candidates[1].endpoint] = (1.0, {"price": 1})
        engine = discovery_factory(
            [directory_factory("Curated", candidates[:2])], validation_timeout=0.05
        )

        result = await engine.discover(ENERGY, budget=0.5)

        assert result.registered == []
        assert result.candidates_tried == 2

    @pytest.mark.asyncio
    async def test_payment_denied_candidate_rejected(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
        candidates: list[CandidateSource],
        answering_fetcher: Any,
    ) -> None:
        ledger = BudgetPaymentAuthorizer(blocked_sources={"oilprice"})
        engine = discovery_factory(
            [directory_factory("Curated", candidates[:2])], payment_authorizer=ledger
        )

        result = await engine.discover(ENERGY, budget=0.5)

        assert result.registered == ["eia"]

    @pytest.mark.asyncio
    async def test_queries_padded_to_minimum(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
    ) -> None:
        directory = directory_factory("Curated")
        engine = discovery_factory([directory])

        result = await engine.discover(Topic(category="energy"), budget=0.5)

        assert 3 <= len(result.queries) <= 5
        assert directory.calls[0] == (result.queries, "energy")

    def test_directory_names_unique(
        self,
        discovery_factory: Callable[..., DiscoveryEngine],
        directory_factory: Callable[..., Any],
    ) -> None:
        engine = discovery_factory([directory_factory("Curated")])

        engine.register_directory(directory_factory("Curated"))
        engine.register_directory(directory_factory("APIs.guru"))

        assert engine.directories == ["Curated", "APIs.guru"]
