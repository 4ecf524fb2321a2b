"""
Unit Tests for the Source Catalog
=================================
"""

from __future__ import annotations

import threading
from collections.abc import Callable

import pytest

from permissionless_oracle.domain.entities import Source
from permissionless_oracle.domain.errors import SourceRegistrationError, UnknownSourceError
from permissionless_oracle.domain.services.reputation_tracker import ReputationTracker
from permissionless_oracle.domain.services.source_catalog import SourceCatalog


class TestSourceCatalog:
    """Tests for registration and lookup."""

    def test_register_and_find(
        self, catalog: SourceCatalog, make_source: Callable[..., Source]
    ) -> None:
        catalog.register(make_source("coingecko", ["crypto", "finance"]))
        catalog.register(make_source("fred", ["economics"]))

        assert [s.id for s in catalog.find_by_category("crypto")] == ["coingecko"]
        assert [s.id for s in catalog.find_by_category(" FINANCE ")] == ["coingecko"]
        assert catalog.find_by_category("weather") == []
        assert len(catalog) == 2
        assert "fred" in catalog

    def test_reregister_overwrites_but_keeps_registration_time(
        self, catalog: SourceCatalog, make_source: Callable[..., Source]
    ) -> None:
        first = catalog.register(make_source("coingecko", ["crypto"], cost=0.02))

        second = catalog.register(make_source("coingecko", ["crypto", "price"], cost=0.05))

        assert len(catalog) == 1
        assert second.cost_per_call == 0.05
        assert second.categories == frozenset({"crypto", "price"})
        assert second.registered_at == first.registered_at

    def test_reregister_keeps_reputation(
        self,
        catalog: SourceCatalog,
        reputation: ReputationTracker,
        make_source: Callable[..., Source],
    ) -> None:
        catalog.register(make_source("coingecko", ["crypto"], cost=0.02))
        reputation.update("coingecko", True, 120.0, 0.9)
        reputation.update("coingecko", False, 80.0, 0.6)
        before = reputation.get("coingecko")

        catalog.register(make_source("coingecko", ["crypto"], cost=0.05))

        assert len(catalog) == 1
        assert catalog.get("coingecko").cost_per_call == 0.05
        assert reputation.get("coingecko") == before
        assert [r.source_id for r in reputation.top()] == ["coingecko"]

    def test_empty_endpoint_rejected(self, catalog: SourceCatalog) -> None:
        with pytest.raises(SourceRegistrationError):
            catalog.register(Source(id="bad", endpoint="  ", categories=["crypto"]))

        assert "bad" not in catalog

    def test_negative_cost_rejected(self, catalog: SourceCatalog) -> None:
        with pytest.raises(SourceRegistrationError):
            catalog.register(
                Source(id="bad", endpoint="https://x.example", categories=["crypto"], cost_per_call=-1)
            )

    def test_deactivated_source_hidden_from_routing(
        self, catalog: SourceCatalog, make_source: Callable[..., Source]
    ) -> None:
        catalog.register(make_source("a"))
        catalog.register(make_source("b"))

        catalog.deactivate("a")

        assert [s.id for s in catalog.find_by_category("crypto")] == ["b"]
        assert catalog.get("a") is not None
        assert catalog.get("a").active is False
        assert len(catalog.all(include_inactive=False)) == 1

    def test_reregister_reactivates(
        self, catalog: SourceCatalog, make_source: Callable[..., Source]
    ) -> None:
        catalog.register(make_source("a"))
        catalog.deactivate("a")

        catalog.register(make_source("a"))

        assert [s.id for s in catalog.find_by_category("crypto")] == ["a"]

    def test_deactivate_unknown(self, catalog: SourceCatalog) -> None:
        with pytest.raises(UnknownSourceError):
            catalog.deactivate("missing")

    def test_categories(self, catalog: SourceCatalog, make_source: Callable[..., Source]) -> None:
        catalog.register(make_source("a", ["crypto", "finance"]))
        catalog.register(make_source("b", ["weather"]))
        catalog.deactivate("b")

        assert catalog.categories() == {"crypto", "finance"}

    def test_concurrent_registration(self, make_source: Callable[..., Source]) -> None:
        """Registrations from many threads are never lost."""
        catalog = SourceCatalog()

        def worker(offset: int) -> None:
            for i in range(50):
                catalog.register(make_source(f"s{offset}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(catalog) == 400
        assert len(catalog.find_by_category("crypto")) == 400
