"""
HTTP Fetcher
============

Fetcher adapter built on httpx. Performs the source query over HTTPS and
records the peer certificate details as proof of origin.

Endpoints may contain a ``{question}`` placeholder, which is replaced by
the URL-encoded question text.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, urlsplit

import httpx

from permissionless_oracle.domain.entities import FetchedResponse, OriginProof
from permissionless_oracle.ports.fetcher import Fetcher, FetchError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "PermissionlessOracle/0.1"


def _cert_field(cert: dict[str, Any], key: str) -> str | None:
    """Read a field such as organizationName out of a getpeercert() RDN tuple."""
    for rdn in cert.get(key, ()):
        for name, value in rdn:
            if name in ("organizationName", "commonName"):
                return str(value)
    return None


def _origin_proof(response: httpx.Response, host: str) -> OriginProof:
    """Build an OriginProof from the TLS connection that served ``response``."""
    if response.url.scheme != "https":
        return OriginProof(verified=False, domain=host)

    issuer = None
    fingerprint = None
    stream = response.extensions.get("network_stream")
    ssl_object = stream.get_extra_info("ssl_object") if stream is not None else None
    if ssl_object is not None:
        cert = ssl_object.getpeercert() or {}
        issuer = _cert_field(cert, "issuer")
        fingerprint = cert.get("serialNumber")

    # httpx verifies the chain and hostname before returning a response
    return OriginProof(verified=True, domain=host, issuer=issuer, fingerprint=fingerprint)


class HTTPFetcher(Fetcher):
    """
    Fetches source payloads with httpx.

    Non-HTTPS endpoints are rejected unless ``require_https`` is off;
    plain HTTP responses are then recorded as unverified.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_connections: int = 20,
        max_response_bytes: int = 1_000_000,
        require_https: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_bytes = max_response_bytes
        self._require_https = require_https
        self._user_agent = user_agent
        self._transport = transport
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections // 2,
        )
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> httpx.AsyncClient:
        """Initialize the HTTP client."""
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            limits=self._limits,
            headers={"User-Agent": self._user_agent, "Accept": "application/json"},
            follow_redirects=True,
            transport=self._transport,
        )
        return self._client

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_url(self, endpoint: str, question: str) -> str:
        if "{question}" in endpoint:
            return endpoint.replace("{question}", quote(question, safe=""))
        return endpoint

    async def fetch_verified(self, endpoint: str, question: str) -> FetchedResponse:
        client = self._client or await self.connect()

        url = self.build_url(endpoint, question)
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            raise FetchError(f"Unsupported URL scheme: {url}")
        if self._require_https and parts.scheme != "https":
            raise FetchError(f"Refusing non-HTTPS endpoint: {url}")

        try:
            async with client.stream("GET", url) as response:
                # Origin details must be read while the connection is open
                origin = _origin_proof(response, parts.hostname or "")
                if response.status_code >= 400:
                    raise FetchError(f"{url} returned HTTP {response.status_code}")

                chunks: list[bytes] = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise FetchError(f"{url} response exceeds {self._max_bytes} bytes")
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise FetchError(f"Timeout fetching {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Error fetching {url}: {e}") from e

        logger.debug(f"Fetched {size} bytes from {parts.hostname} (verified={origin.verified})")
        return FetchedResponse(raw=b"".join(chunks), origin=origin)
