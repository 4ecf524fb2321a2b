"""Unit tests for the httpx fetcher."""

from __future__ import annotations

import httpx
import pytest

from permissionless_oracle.adapters.outbound.fetcher_http import HTTPFetcher
from permissionless_oracle.ports.fetcher import FetchError


def _transport(requests: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/missing":
            return httpx.Response(404, json={"error": "not found"})
        if request.url.path == "/large":
            return httpx.Response(200, content=b"x" * 4096)
        if request.url.path == "/slow":
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"outcome": True, "confidence": 0.9})

    return httpx.MockTransport(handler)


@pytest.fixture
def requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def fetcher(requests: list[httpx.Request]) -> HTTPFetcher:
    return HTTPFetcher(transport=_transport(requests), max_response_bytes=1024)


class TestHTTPFetcher:
    """Test HTTPFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_verified(self, fetcher: HTTPFetcher) -> None:
        """Test a successful HTTPS fetch returns raw bytes and origin."""
        response = await fetcher.fetch_verified("https://api.example.com/answer", "q")

        assert b'"outcome"' in response.raw
        assert response.origin.verified is True
        assert response.origin.domain == "api.example.com"
        await fetcher.disconnect()

    @pytest.mark.asyncio
    async def test_question_placeholder(
        self, fetcher: HTTPFetcher, requests: list[httpx.Request]
    ) -> None:
        """Test the question is URL-encoded into the endpoint."""
        await fetcher.fetch_verified(
            "https://api.example.com/ask?q={question}", "Will BTC hit $100k?"
        )

        assert requests[0].url.params["q"] == "Will BTC hit $100k?"
        assert requests[0].headers["user-agent"].startswith("PermissionlessOracle")
        await fetcher.disconnect()

    @pytest.mark.asyncio
    async def test_connect_reuses_client(self, fetcher: HTTPFetcher) -> None:
        """Test connect is idempotent and a fetch after disconnect reconnects."""
        client = await fetcher.connect()
        assert await fetcher.connect() is client

        await fetcher.disconnect()
        response = await fetcher.fetch_verified("https://api.example.com/answer", "q")

        assert response.raw
        assert await fetcher.connect() is not client
        await fetcher.disconnect()

    def test_build_url_without_placeholder(self, fetcher: HTTPFetcher) -> None:
        """Test endpoints without a placeholder are untouched."""
        assert fetcher.build_url("https://a.example.com/x", "q") == "https://a.example.com/x"

    @pytest.mark.asyncio
    async def test_http_rejected(self, fetcher: HTTPFetcher) -> None:
        """Test plain HTTP is refused when HTTPS is required."""
        with pytest.raises(FetchError):
            await fetcher.fetch_verified("http://api.example.com/answer", "q")

    @pytest.mark.asyncio
    async def test_http_allowed_but_unverified(self, requests: list[httpx.Request]) -> None:
        """Test plain HTTP responses are marked unverified."""
        fetcher = HTTPFetcher(transport=_transport(requests), require_https=False)

        response = await fetcher.fetch_verified("http://api.example.com/answer", "q")

        assert response.origin.verified is False
        await fetcher.disconnect()

    @pytest.mark.asyncio
    async def test_unsupported_scheme(self, fetcher: HTTPFetcher) -> None:
        """Test non-HTTP schemes are refused."""
        with pytest.raises(FetchError):
            await fetcher.fetch_verified("ftp://files.example.com/answer", "q")

    @pytest.mark.asyncio
    async def test_error_status(self, fetcher: HTTPFetcher) -> None:
        """Test 4xx responses raise FetchError."""
        with pytest.raises(FetchError, match="404"):
            await fetcher.fetch_verified("https://api.example.com/missing", "q")
        await fetcher.disconnect()

    @pytest.mark.asyncio
    async def test_response_too_large(self, fetcher: HTTPFetcher) -> None:
        """Test oversized bodies are rejected."""
        with pytest.raises(FetchError, match="exceeds"):
            await fetcher.fetch_verified("https://api.example.com/large", "q")
        await fetcher.disconnect()

    @pytest.mark.asyncio
    async def test_timeout(self, fetcher: HTTPFetcher) -> None:
        """Test transport timeouts surface as FetchError."""
        with pytest.raises(FetchError, match="Timeout"):
            await fetcher.fetch_verified("https://api.example.com/slow", "q")
        await fetcher.disconnect()
