"""
Proof Chain
===========

Tamper-evident, replayable audit trail.

Every raw source response is stored as a content-addressed blob, and
each research call commits one root record referencing those blobs.
A verifier can fetch the root, recompute every hash down the tree and
confirm nothing was altered after the fact.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from permissionless_oracle.domain.entities import ProofRecord
from permissionless_oracle.ports.proof_store import ProofStore

logger = logging.getLogger(__name__)

RECORD_TYPE = "record"


def content_hash(payload: bytes) -> str:
    """SHA-256 hex digest used as the address of ``payload``."""
    return hashlib.sha256(payload).hexdigest()


def canonical_json(data: Any) -> bytes:
    """Deterministic JSON encoding: sorted keys, compact separators, UTF-8."""
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


class ProofChain:
    """Content-addressed store of raw responses and audit records."""

    def __init__(self, store: ProofStore) -> None:
        self._store = store

    async def store(self, payload: bytes) -> str:
        """
        Store ``payload`` and return its hash.

        Identical bytes always return the same hash and are stored once.
        """
        key = content_hash(payload)
        written = await self._store.put(key, payload)
        if not written:
            logger.debug(f"Proof blob {key[:12]} already stored")
        return key

    async def store_record(
        self,
        child_hashes: Iterable[str],
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Store a record referencing ``child_hashes`` and return its hash."""
        record = {
            "type": RECORD_TYPE,
            "children": list(child_hashes),
            "metadata": dict(metadata or {}),
        }
        return await self.store(canonical_json(record))

    def verify(self, hash_: str, payload: bytes) -> bool:
        """Recompute the hash of ``payload`` and compare."""
        return content_hash(payload) == hash_

    async def get(self, hash_: str) -> ProofRecord | None:
        payload = await self._store.get(hash_)
        if payload is None:
            return None
        return ProofRecord(hash=hash_, payload=payload)

    async def verify_tree(self, root_hash: str) -> bool:
        """
        Recursively fetch ``root_hash`` and its children and recompute every hash.

        Returns False if any blob is missing or no longer matches its address.
        """
        seen: set[str] = set()
        pending = [root_hash]
        while pending:
            key = pending.pop()
            if key in seen:
                continue
            seen.add(key)

            payload = await self._store.get(key)
            if payload is None:
                logger.warning(f"Proof blob {key[:12]} missing during verification")
                return False
            if not self.verify(key, payload):
                logger.warning(f"Proof blob {key[:12]} does not match its hash")
                return False

            record = decode_record(payload)
            if record is not None:
                pending.extend(record["children"])
        return True


def decode_record(payload: bytes) -> dict[str, Any] | None:
    """Return the decoded record if ``payload`` is an audit record, else None."""
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, ValueError):
        return None
    if (
        isinstance(data, dict)
        and data.get("type") == RECORD_TYPE
        and isinstance(data.get("children"), list)
        and all(isinstance(c, str) for c in data["children"])
    ):
        return data
    return None
