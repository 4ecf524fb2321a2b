"""
Redis Proof Store
=================

ProofStore adapter persisting audit blobs in Redis. Keys are content
hashes, written with SET NX so an existing blob is never replaced.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import TYPE_CHECKING

import redis.asyncio as redis

from permissionless_oracle.ports.proof_store import ProofStore, ProofStoreError

if TYPE_CHECKING:
    from permissionless_oracle.infrastructure.config import RedisSettings

logger = logging.getLogger(__name__)

PROOF_PREFIX = "oracle:proof:"


class RedisProofStore(ProofStore):
    """Content-addressed blobs in Redis, optionally expiring."""

    def __init__(self, settings: RedisSettings, client: redis.Redis | None = None) -> None:  # type: ignore[type-arg]
        """
        Initialize the adapter with configuration.

        Args:
            settings: Redis connection settings.
            client: Pre-built client (tests); ``connect`` builds one otherwise.
        """
        self._settings = settings
        self._client = client
        self._ttl = settings.proof_ttl_seconds

    async def connect(self) -> None:
        """Establish connection to Redis with retries."""
        if self._client is not None:
            return

        max_retries = self._settings.connect_retries
        retry_delay = 1.0
        last_error: Exception | None = None

        for attempt in range(max_retries):
            try:
                password = None
                if self._settings.password:
                    password = self._settings.password.get_secret_value()

                if self._settings.socket_path:
                    pool = redis.ConnectionPool(
                        connection_class=redis.UnixDomainSocketConnection,
                        path=self._settings.socket_path,
                        password=password,
                        db=self._settings.db,
                        max_connections=self._settings.max_connections,
                    )
                else:
                    pool = redis.ConnectionPool(
                        host=self._settings.host,
                        port=self._settings.port,
                        password=password,
                        db=self._settings.db,
                        max_connections=self._settings.max_connections,
                    )
                    # Force IPv4 socket family on the connection class
                    pool.connection_class = type(
                        "IPv4Connection",
                        (pool.connection_class,),
                        {"socket_type": socket.AF_INET},
                    )

                client = redis.Redis(connection_pool=pool, decode_responses=False)
                await client.ping()  # type: ignore[misc]
                self._client = client
                logger.info(
                    f"Connected to Redis proof store at "
                    f"{self._settings.socket_path or f'{self._settings.host}:{self._settings.port}'}"
                )
                return

            except (redis.ConnectionError, FileNotFoundError) as e:
                last_error = e
                if attempt < max_retries - 1:
                    logger.warning(
                        f"Redis connection attempt {attempt + 1} failed: {e}. "
                        f"Retrying in {retry_delay}s..."
                    )
                    await asyncio.sleep(retry_delay)

        logger.error(f"Redis connection failed after {max_retries} attempts: {last_error}")
        raise ProofStoreError(f"Connection failed after {max_retries} attempts: {last_error}")

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis proof store")

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()  # type: ignore[misc]
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    def _make_key(self, key: str) -> str:
        return f"{PROOF_PREFIX}{key}"

    def _require_client(self) -> redis.Redis:  # type: ignore[type-arg]
        if self._client is None:
            raise ProofStoreError("Redis proof store not connected")
        return self._client

    async def put(self, key: str, payload: bytes) -> bool:
        client = self._require_client()
        try:
            written = await client.set(
                self._make_key(key),
                payload,
                nx=True,
                ex=self._ttl if self._ttl > 0 else None,
            )
        except redis.RedisError as e:
            raise ProofStoreError(f"Redis SET failed: {e}") from e
        return bool(written)

    async def get(self, key: str) -> bytes | None:
        client = self._require_client()
        try:
            data = await client.get(self._make_key(key))
        except redis.RedisError as e:
            raise ProofStoreError(f"Redis GET failed: {e}") from e
        return bytes(data) if data is not None else None

    async def exists(self, key: str) -> bool:
        client = self._require_client()
        try:
            return bool(await client.exists(self._make_key(key)))
        except redis.RedisError as e:
            raise ProofStoreError(f"Redis EXISTS failed: {e}") from e
