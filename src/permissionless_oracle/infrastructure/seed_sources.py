"""
Seed Sources
============

Built-in starting catalog and YAML loading for operator-supplied sources.

YAML format:

    sources:
      - id: coingecko
        name: CoinGecko
        endpoint: https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd
        categories: [crypto, finance]
        cost_per_call: 0.02
        parser: numeric
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from permissionless_oracle.domain.entities import Source
from permissionless_oracle.domain.errors import SourceRegistrationError
from permissionless_oracle.domain.services.source_catalog import SourceCatalog

logger = logging.getLogger(__name__)

DEFAULT_SOURCES: list[dict[str, Any]] = [
    {
        "id": "coingecko",
        "name": "CoinGecko",
        "endpoint": "https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd",
        "categories": ["crypto", "finance", "price"],
        "cost_per_call": 0.02,
        "description": "Cryptocurrency prices, market caps, and historical data",
        "parser": "numeric",
    },
    {
        "id": "cryptocompare",
        "name": "CryptoCompare",
        "endpoint": "https://min-api.cryptocompare.com/data/price?fsym=BTC&tsyms=USD",
        "categories": ["crypto", "finance", "trading"],
        "cost_per_call": 0.03,
        "description": "Cryptocurrency market data and trading volume",
        "parser": "numeric",
    },
    {
        "id": "newsapi",
        "name": "NewsAPI",
        "endpoint": "https://newsapi.org/v2/everything?q={question}&pageSize=5",
        "categories": ["news", "events", "politics", "business"],
        "cost_per_call": 0.02,
        "description": "Breaking news from 80,000+ sources worldwide",
    },
    {
        "id": "twitter",
        "name": "TwitterAPI",
        "endpoint": "https://api.twitter.com/2/tweets/search/recent?query={question}",
        "categories": ["social", "sentiment", "trends"],
        "cost_per_call": 0.05,
        "description": "Twitter sentiment analysis and trending topics",
    },
    {
        "id": "openweathermap",
        "name": "OpenWeatherMap",
        "endpoint": "https://api.openweathermap.org/data/3.0/onecall?lat=40.71&lon=-74.01&exclude=minutely,hourly,alerts",
        "categories": ["weather", "climate"],
        "cost_per_call": 0.01,
        "description": "Weather forecasts and historical weather data",
        "parser": "numeric",
    },
    {
        "id": "sportsdata",
        "name": "SportsData",
        "endpoint": "https://api.sportsdata.io/v3/nba/scores/json/Standings/2026",
        "categories": ["sports", "nfl", "nba", "soccer"],
        "cost_per_call": 0.04,
        "description": "Live sports scores, stats, and odds",
    },
    {
        "id": "alphavantage",
        "name": "AlphaVantage",
        "endpoint": "https://www.alphavantage.co/query?function=GLOBAL_QUOTE&symbol=SPY",
        "categories": ["stocks", "finance", "trading"],
        "cost_per_call": 0.03,
        "description": "Stock prices, forex, and financial indicators",
        "parser": "numeric",
    },
    {
        "id": "zillow",
        "name": "Zillow",
        "endpoint": "https://api.bridgedataoutput.com/api/v2/zestimates_v2/zestimates?address={question}",
        "categories": ["realestate", "housing", "property"],
        "cost_per_call": 0.03,
        "description": "Home prices and real estate market data",
        "parser": "numeric",
    },
    {
        "id": "fred",
        "name": "FRED",
        "endpoint": "https://api.stlouisfed.org/fred/series/observations?series_id=CPIAUCSL&file_type=json&sort_order=desc&limit=1",
        "categories": ["economics", "government", "inflation"],
        "cost_per_call": 0.02,
        "description": "US economic data from Federal Reserve",
        "parser": "numeric",
    },
]


def default_sources() -> list[Source]:
    return [Source.model_validate(entry) for entry in DEFAULT_SOURCES]


def load_seed_file(path: str | Path) -> list[Source]:
    """
    Read sources from a YAML file.

    Raises:
        SourceRegistrationError: If the file is missing or malformed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        entries = data.get("sources", []) if isinstance(data, dict) else data
        return [Source.model_validate(entry) for entry in entries or []]
    except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
        raise SourceRegistrationError(f"Cannot load seed file {path}: {e}") from e


def build_catalog(load_defaults: bool = True, seed_file: str | Path | None = None) -> SourceCatalog:
    """Create a catalog with the built-in and/or file-provided sources."""
    catalog = SourceCatalog()
    sources: list[Source] = default_sources() if load_defaults else []
    if seed_file:
        sources.extend(load_seed_file(seed_file))
    for source in sources:
        catalog.register(source)
    logger.info(f"Catalog initialized with {len(catalog)} source(s)")
    return catalog
