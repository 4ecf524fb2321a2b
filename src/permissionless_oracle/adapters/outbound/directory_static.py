"""
Static Directory
================

DirectorySearch adapter over a curated, in-process list of candidate
APIs. Entries can be loaded from a YAML file:

    name: Curated
    search_cost: 0.01
    candidates:
      - name: OilPriceAPI
        endpoint: https://api.oilpriceapi.com/v1
        categories: [energy, oil]
        cost_per_call: 0.03
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from permissionless_oracle.domain.entities import CandidateSource
from permissionless_oracle.ports.directory_search import DirectorySearch, DirectorySearchError

logger = logging.getLogger(__name__)

GENERIC_WORDS = frozenset({"api", "apis", "data", "price", "prices", "statistics", "market"})

DEFAULT_CANDIDATES: list[dict[str, object]] = [
    {
        "name": "OilPriceAPI",
        "endpoint": "https://api.oilpriceapi.com/v1/prices/latest",
        "description": "Real-time oil and gas price data",
        "categories": ["energy", "oil", "commodities"],
        "cost_per_call": 0.03,
    },
    {
        "name": "EnergyInformationAdmin",
        "endpoint": "https://api.eia.gov/v2",
        "description": "US Energy Information Administration data",
        "categories": ["energy", "economics"],
        "cost_per_call": 0.0,
    },
    {
        "name": "PollingDataAPI",
        "endpoint": "https://api.pollingdata.com/v1",
        "description": "Election polls and political forecasts",
        "categories": ["politics", "election"],
        "cost_per_call": 0.04,
    },
    {
        "name": "CDCDataAPI",
        "endpoint": "https://data.cdc.gov/api",
        "description": "US CDC health and disease data",
        "categories": ["health", "medical"],
        "cost_per_call": 0.0,
    },
]


class StaticDirectory(DirectorySearch):
    """Returns candidates whose categories or description match the search."""

    def __init__(
        self,
        candidates: list[CandidateSource],
        *,
        name: str = "Curated",
        search_cost: float = 0.01,
    ) -> None:
        self._name = name
        self._search_cost = search_cost
        self._candidates = [c.model_copy(update={"directory": name}) for c in candidates]

    @classmethod
    def with_defaults(cls, *, search_cost: float = 0.01) -> StaticDirectory:
        return cls(
            [CandidateSource.model_validate(c) for c in DEFAULT_CANDIDATES],
            search_cost=search_cost,
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> StaticDirectory:
        """
        Load a directory definition from YAML.

        Raises:
            DirectorySearchError: If the file is missing or malformed.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            entries = data.get("candidates", [])
            candidates = [CandidateSource.model_validate(entry) for entry in entries]
        except (OSError, yaml.YAMLError, AttributeError, ValidationError) as e:
            raise DirectorySearchError(f"Cannot load directory file {path}: {e}") from e

        logger.info(f"Loaded {len(candidates)} curated candidate(s) from {path}")
        return cls(
            candidates,
            name=str(data.get("name", "Custom")),
            search_cost=float(data.get("search_cost", 0.01)),
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def search_cost(self) -> float:
        return self._search_cost

    async def search(
        self,
        queries: list[str],
        category: str,
    ) -> tuple[list[CandidateSource], float]:
        category = category.strip().lower()
        words = {
            w for q in queries for w in q.lower().split() if len(w) > 2 and w not in GENERIC_WORDS
        }

        matches = []
        for candidate in self._candidates:
            text = f"{candidate.name} {candidate.description}".lower()
            if (
                category in candidate.categories
                or candidate.categories & words
                or any(w in text for w in words)
            ):
                matches.append(candidate)
        return matches, self._search_cost
