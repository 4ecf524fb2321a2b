"""
DirectorySearch Port
====================

Abstract interface for public API directories that discovery searches
for candidate data sources.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import CandidateSource


class DirectorySearch(ABC):
    """
    Port for an API directory (APIs.guru, RapidAPI, a curated list, ...).

    Each search is a paid call; ``search_cost`` is the most a single
    search may charge and is what discovery reserves against its budget.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Directory name used in logs and candidate provenance."""
        ...

    @property
    @abstractmethod
    def search_cost(self) -> float:
        """Declared cost of one search call."""
        ...

    @abstractmethod
    async def search(
        self,
        queries: list[str],
        category: str,
    ) -> tuple[list[CandidateSource], float]:
        """
        Search the directory.

        Args:
            queries: Search phrases derived from the topic.
            category: Category that triggered discovery.

        Returns:
            Unvalidated candidates and the cost charged for the search.

        Raises:
            DirectorySearchError: If the directory is unreachable or fails.
        """
        ...


class DirectorySearchError(Exception):
    """Raised when a directory search fails."""

    pass
