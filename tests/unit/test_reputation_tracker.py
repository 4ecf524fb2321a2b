"""
Unit Tests for the Reputation Tracker
=====================================
"""

from __future__ import annotations

import threading
from collections.abc import Callable

import pytest

from permissionless_oracle.domain.entities import Source
from permissionless_oracle.domain.errors import UnknownSourceError
from permissionless_oracle.domain.services.reputation_tracker import ReputationTracker
from permissionless_oracle.domain.services.source_catalog import SourceCatalog


@pytest.fixture
def tracker(catalog: SourceCatalog, make_source: Callable[..., Source]) -> ReputationTracker:
    for source_id in ("a", "b", "c"):
        catalog.register(make_source(source_id))
    return ReputationTracker(catalog)


class TestReputationTracker:
    """Tests for running statistics."""

    def test_new_source_has_empty_record(self, tracker: ReputationTracker) -> None:
        record = tracker.get("a")

        assert record.total_queries == 0
        assert record.success_rate == 0.0
        assert record.last_updated is None

    def test_update_running_means(self, tracker: ReputationTracker) -> None:
        tracker.update("a", True, 100.0, 0.9)
        tracker.update("a", True, 200.0, 0.7)
        record = tracker.update("a", False, 300.0, 0.5)

        assert record.total_queries == 3
        assert record.correct_count == 2
        assert record.wrong_count == 1
        assert record.success_rate == pytest.approx(2 / 3)
        assert record.avg_response_time_ms == pytest.approx(200.0)
        assert record.avg_confidence == pytest.approx(0.7)
        assert record.last_updated is not None

    def test_counts_stay_consistent(self, tracker: ReputationTracker) -> None:
        for i in range(10):
            tracker.update("b", i % 3 == 0, 50.0, 0.8)

        record = tracker.get("b")

        assert record.correct_count + record.wrong_count == record.total_queries
        assert 0.0 <= record.success_rate <= 1.0

    def test_success_rate_moves_with_each_grade(self, tracker: ReputationTracker) -> None:
        grades = [True, False, False, True, True, True, False, True, False, False, True]
        previous = tracker.get("c").success_rate

        for was_correct in grades:
            rate = tracker.update("c", was_correct, 50.0, 0.8).success_rate
            if was_correct:
                assert rate >= previous
            else:
                assert rate <= previous
            previous = rate

        assert tracker.get("c").total_queries == len(grades)

    def test_unknown_source(self, tracker: ReputationTracker) -> None:
        with pytest.raises(UnknownSourceError):
            tracker.update("missing", True, 10.0, 0.5)
        with pytest.raises(UnknownSourceError):
            tracker.get("missing")

    def test_top_orders_by_success_rate(self, tracker: ReputationTracker) -> None:
        tracker.update("a", False, 10.0, 0.5)
        tracker.update("b", True, 10.0, 0.5)
        tracker.update("b", True, 10.0, 0.5)
        tracker.update("c", True, 10.0, 0.5)

        top = tracker.top(3)

        assert [r.source_id for r in top] == ["b", "c", "a"]
        assert len(tracker.top(1)) == 1

    def test_concurrent_updates_not_lost(self, tracker: ReputationTracker) -> None:
        def worker() -> None:
            for _ in range(200):
                tracker.update("a", True, 10.0, 0.9)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.get("a").total_queries == 800
        assert tracker.get("a").correct_count == 800
