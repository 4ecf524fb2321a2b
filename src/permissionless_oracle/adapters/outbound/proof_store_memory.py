"""
In-Memory Proof Store
=====================

ProofStore kept in a process-local dict. Default backend and the one
used in tests.
"""

from __future__ import annotations

import asyncio

from permissionless_oracle.ports.proof_store import ProofStore


class InMemoryProofStore(ProofStore):
    """Dict-backed content-addressed store."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def put(self, key: str, payload: bytes) -> bool:
        async with self._lock:
            if key in self._blobs:
                return False
            self._blobs[key] = bytes(payload)
            return True

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def exists(self, key: str) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
