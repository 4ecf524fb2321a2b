"""
ProofStore Port
===============

Abstract interface for the content-addressed blob storage behind the
proof chain.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ProofStore(ABC):
    """
    Port for content-addressed storage.

    Keys are hashes of the stored bytes, so a blob stored under a key
    never changes. ``put`` must not overwrite an existing key.
    """

    @abstractmethod
    async def put(self, key: str, payload: bytes) -> bool:
        """
        Store ``payload`` under ``key`` unless the key already exists.

        Returns:
            True if the blob was written, False if it was already present.

        Raises:
            ProofStoreError: If the backend fails.
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Fetch a blob, or None if absent."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Whether a blob is stored under ``key``."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is operational."""
        return True


class ProofStoreError(Exception):
    """Raised when the proof store backend fails."""

    pass
