"""
Reputation Tracker
==================

Per-source rolling performance statistics that feed back into source
selection and (optionally) vote weighting.

Each source has its own lock, so concurrent research calls touching
different sources never contend and read-modify-write on one record
is atomic.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime

from permissionless_oracle.domain.entities import ReputationRecord
from permissionless_oracle.domain.errors import UnknownSourceError
from permissionless_oracle.domain.services.source_catalog import SourceCatalog

logger = logging.getLogger(__name__)


class ReputationTracker:
    """Maintains one ReputationRecord per catalog source."""

    def __init__(self, catalog: SourceCatalog) -> None:
        self._catalog = catalog
        self._records: dict[str, ReputationRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, source_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(source_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[source_id] = lock
            return lock

    def _require_known(self, source_id: str) -> None:
        if source_id not in self._catalog:
            raise UnknownSourceError(f"Unknown source: {source_id}")

    def update(
        self,
        source_id: str,
        was_correct: bool,
        response_time_ms: float,
        confidence: float,
    ) -> ReputationRecord:
        """
        Record one graded answer from a source.

        Raises:
            UnknownSourceError: If the source is not in the catalog.
        """
        self._require_known(source_id)

        with self._lock_for(source_id):
            prev = self._records.get(source_id) or ReputationRecord(source_id=source_id)
            total = prev.total_queries + 1
            correct = prev.correct_count + (1 if was_correct else 0)
            wrong = prev.wrong_count + (0 if was_correct else 1)

            # Cumulative running means
            avg_time = prev.avg_response_time_ms + (
                max(response_time_ms, 0.0) - prev.avg_response_time_ms
            ) / total
            clamped = min(max(confidence, 0.0), 1.0)
            avg_conf = prev.avg_confidence + (clamped - prev.avg_confidence) / total

            record = ReputationRecord(
                source_id=source_id,
                total_queries=total,
                correct_count=correct,
                wrong_count=wrong,
                avg_response_time_ms=avg_time,
                avg_confidence=min(max(avg_conf, 0.0), 1.0),
                success_rate=correct / total,
                last_updated=datetime.now(UTC),
            )
            self._records[source_id] = record

        logger.debug(
            f"Reputation {source_id}: {'correct' if was_correct else 'wrong'}, "
            f"rate={record.success_rate:.2f} over {record.total_queries} queries"
        )
        return record

    def get(self, source_id: str) -> ReputationRecord:
        """
        Read-only snapshot; an empty record for a source never graded.

        Raises:
            UnknownSourceError: If the source is not in the catalog.
        """
        self._require_known(source_id)
        return self._records.get(source_id) or ReputationRecord(source_id=source_id)

    def top(self, limit: int = 10) -> list[ReputationRecord]:
        """
        Best sources first: success rate descending, then more evidence.

        Sources with no recorded queries are included after graded ones
        of equal rate.
        """
        records = [self.get(source.id) for source in self._catalog.all()]
        records.sort(key=lambda r: (-r.success_rate, -r.total_queries, r.source_id))
        return records[: max(limit, 0)]
