"""
APIs.guru Directory
===================

DirectorySearch adapter for the public APIs.guru OpenAPI directory.
The full list is fetched once and cached; searches match query terms
against API titles, descriptions and directory categories.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from permissionless_oracle.domain.entities import CandidateSource
from permissionless_oracle.ports.directory_search import DirectorySearch, DirectorySearchError

logger = logging.getLogger(__name__)

APIS_GURU_LIST_URL = "https://api.apis.guru/v2/list.json"
DEFAULT_SEARCH_COST = 0.02
DEFAULT_COST_PER_CALL = 0.03


class APIsGuruDirectory(DirectorySearch):
    """Searches the APIs.guru catalog over HTTPS."""

    def __init__(
        self,
        *,
        list_url: str = APIS_GURU_LIST_URL,
        search_cost: float = DEFAULT_SEARCH_COST,
        max_results: int = 5,
        cache_ttl_seconds: float = 3600.0,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._list_url = list_url
        self._search_cost = search_cost
        self._max_results = max_results
        self._cache_ttl = cache_ttl_seconds
        self._timeout = timeout
        self._transport = transport
        self._cache: dict[str, Any] | None = None
        self._cached_at = 0.0

    @property
    def name(self) -> str:
        return "APIs.guru"

    @property
    def search_cost(self) -> float:
        return self._search_cost

    async def _load_list(self) -> dict[str, Any]:
        now = time.monotonic()
        if self._cache is not None and now - self._cached_at < self._cache_ttl:
            return self._cache

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={"Accept": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(self._list_url)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise DirectorySearchError(f"APIs.guru request failed: {e}") from e
        except ValueError as e:
            raise DirectorySearchError(f"APIs.guru returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DirectorySearchError("APIs.guru list has an unexpected shape")
        self._cache = data
        self._cached_at = now
        logger.debug(f"Loaded {len(data)} APIs from APIs.guru")
        return data

    async def search(
        self,
        queries: list[str],
        category: str,
    ) -> tuple[list[CandidateSource], float]:
        data = await self._load_list()
        terms = {q.strip().lower() for q in [*queries, category] if q.strip()}

        candidates: list[CandidateSource] = []
        for api_key, api_data in data.items():
            version = self._preferred_version(api_data)
            if version is None:
                continue
            info = version.get("info") or {}
            title = str(info.get("title") or api_key)
            description = str(info.get("description") or "")
            listed_categories = [str(c).lower() for c in info.get("x-apisguru-categories") or []]
            endpoint = version.get("swaggerUrl") or version.get("swaggerYamlUrl")
            if not endpoint:
                continue

            haystack = f"{title} {description}".lower()
            if not (
                any(term in haystack for term in terms) or category.lower() in listed_categories
            ):
                continue

            candidates.append(
                CandidateSource(
                    id=f"apisguru-{api_key}".replace(":", "-"),
                    name=title,
                    endpoint=endpoint,
                    description=description[:500],
                    categories=[category, *listed_categories],
                    cost_per_call=DEFAULT_COST_PER_CALL,
                    directory=self.name,
                )
            )
            if len(candidates) >= self._max_results:
                break

        return candidates, self._search_cost

    @staticmethod
    def _preferred_version(api_data: Any) -> dict[str, Any] | None:
        if not isinstance(api_data, dict):
            return None
        versions = api_data.get("versions") or {}
        if not isinstance(versions, dict) or not versions:
            return None
        preferred = versions.get(api_data.get("preferred"))
        if isinstance(preferred, dict):
            return preferred
        first = next(iter(versions.values()))
        return first if isinstance(first, dict) else None
