"""
Source Catalog
==============

Concurrency-safe registry of known data sources, queryable by category.

Writes are serialized by a lock and publish a fresh immutable mapping;
readers take whatever mapping is current without locking, so a reader
never observes a half-applied registration.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from permissionless_oracle.domain.entities import Source
from permissionless_oracle.domain.errors import SourceRegistrationError, UnknownSourceError

logger = logging.getLogger(__name__)


class SourceCatalog:
    """
    Registry mapping source id to its Source entry.

    Reputation is not stored here; it is keyed by source id in the
    ReputationTracker, so re-registering a source never resets it.
    """

    def __init__(self, sources: Iterable[Source] | None = None) -> None:
        self._lock = threading.RLock()
        self._sources: Mapping[str, Source] = MappingProxyType({})
        for source in sources or ():
            self.register(source)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def register(self, source: Source) -> Source:
        """
        Insert or update a source by id.

        Re-registration overwrites metadata, keeps the original
        ``registered_at`` and reactivates a deactivated source.

        Raises:
            SourceRegistrationError: If the endpoint is empty or the cost negative.
        """
        if not source.endpoint or not source.endpoint.strip():
            raise SourceRegistrationError(f"Source {source.id!r} has an empty endpoint")
        if source.cost_per_call < 0:
            raise SourceRegistrationError(
                f"Source {source.id!r} has negative cost_per_call {source.cost_per_call}"
            )

        with self._lock:
            existing = self._sources.get(source.id)
            if existing is not None:
                source = source.model_copy(
                    update={"registered_at": existing.registered_at, "active": True}
                )
            updated = dict(self._sources)
            updated[source.id] = source
            self._sources = MappingProxyType(updated)

        if existing is None:
            logger.info(
                f"Registered source {source.id} ({', '.join(sorted(source.categories))})"
            )
        else:
            logger.debug(f"Updated source {source.id}")
        return source

    def deactivate(self, source_id: str) -> Source:
        """
        Mark a source inactive; it stays queryable through ``get``.

        Raises:
            UnknownSourceError: If the id is not registered.
        """
        with self._lock:
            existing = self._sources.get(source_id)
            if existing is None:
                raise UnknownSourceError(f"Unknown source: {source_id}")
            updated = dict(self._sources)
            updated[source_id] = existing.model_copy(update={"active": False})
            self._sources = MappingProxyType(updated)

        logger.info(f"Deactivated source {source_id}")
        return updated[source_id]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_by_category(self, category: str) -> list[Source]:
        """Return all active sources serving ``category``; order is not significant."""
        key = category.strip().lower()
        return [s for s in self._sources.values() if s.active and key in s.categories]

    def get(self, source_id: str) -> Source | None:
        return self._sources.get(source_id)

    def all(self, *, include_inactive: bool = True) -> list[Source]:
        sources = list(self._sources.values())
        if not include_inactive:
            sources = [s for s in sources if s.active]
        return sources

    def categories(self) -> set[str]:
        """All categories served by at least one active source."""
        result: set[str] = set()
        for source in self._sources.values():
            if source.active:
                result.update(source.categories)
        return result

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)
