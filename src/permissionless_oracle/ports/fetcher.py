"""
Fetcher Port
============

Abstract interface for fetching raw data from a source together with
proof that the bytes came from the claimed origin. Certificate and
domain checks live entirely inside implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import FetchedResponse


class Fetcher(ABC):
    """Port for verified network fetches."""

    @abstractmethod
    async def fetch_verified(self, endpoint: str, question: str) -> FetchedResponse:
        """
        Fetch raw bytes for a question from an endpoint.

        Args:
            endpoint: Source endpoint URL.
            question: Question text, passed along for sources that accept it.

        Returns:
            Raw payload plus origin proof.

        Raises:
            FetchError: On network failure or a non-success response.
        """
        ...


class FetchError(Exception):
    """Raised when a fetch fails."""

    pass
