"""
Discovery Engine
================

Expands the source catalog when too few sources are known for a topic.

Discovery flow:
1. Derive 3-5 search queries (LLM generator if configured, else keyword expansion)
2. Search each configured directory while its declared cost fits the budget
3. Validate every candidate with one real, budgeted test fetch
4. Register survivors, tagged with the triggering category

A failing directory is logged and skipped; discovery then reports
PARTIAL_FAILURE and the caller carries on with what exists.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING

from permissionless_oracle.domain.entities import CandidateSource, Source, Topic
from permissionless_oracle.domain.errors import SourceRegistrationError
from permissionless_oracle.domain.results import DiscoveryResult, DiscoveryStatus
from permissionless_oracle.domain.services.question_router import (
    MIN_QUERIES,
    expand_search_queries,
    normalize_queries,
)
from permissionless_oracle.ports.classifier import ClassificationError
from permissionless_oracle.ports.directory_search import DirectorySearch, DirectorySearchError
from permissionless_oracle.ports.fetcher import FetchError
from permissionless_oracle.ports.payment_authorizer import PaymentDenied

if TYPE_CHECKING:
    from permissionless_oracle.domain.services.source_catalog import SourceCatalog
    from permissionless_oracle.ports.classifier import SearchQueryGenerator
    from permissionless_oracle.ports.fetcher import Fetcher
    from permissionless_oracle.ports.payment_authorizer import PaymentAuthorizer

logger = logging.getLogger(__name__)

# Float slack when comparing accumulated costs with the budget
_COST_EPSILON = 1e-9


def _endpoint_key(endpoint: str) -> str:
    return endpoint.strip().rstrip("/").lower()


class DiscoveryEngine:
    """
    Finds, validates and registers new data sources for a topic.

    Safe to call concurrently for different topics. Concurrent calls
    for the same topic may both register the same candidate, which the
    catalog's idempotent registration absorbs.
    """

    def __init__(
        self,
        catalog: SourceCatalog,
        fetcher: Fetcher,
        directories: list[DirectorySearch] | None = None,
        query_generator: SearchQueryGenerator | None = None,
        payment_authorizer: PaymentAuthorizer | None = None,
        *,
        validation_timeout: float = 5.0,
        search_timeout: float = 15.0,
        query_timeout: float = 15.0,
        max_parallel_validations: int = 5,
    ) -> None:
        """
        Initialize the engine.

        Args:
            catalog: Catalog that receives validated sources.
            fetcher: Used for the validation test fetch.
            directories: Directories searched in registration order.
            query_generator: Optional generator for search phrases.
            payment_authorizer: Optional spend authorization for test fetches.
            validation_timeout: Seconds allowed for one test fetch.
            search_timeout: Seconds allowed for one directory search.
            query_timeout: Seconds allowed for query generation.
            max_parallel_validations: Concurrent test fetches.
        """
        self._catalog = catalog
        self._fetcher = fetcher
        self._directories: list[DirectorySearch] = []
        self._query_generator = query_generator
        self._payment_authorizer = payment_authorizer
        self._validation_timeout = validation_timeout
        self._search_timeout = search_timeout
        self._query_timeout = query_timeout
        self._max_parallel = max(1, max_parallel_validations)
        for directory in directories or []:
            self.register_directory(directory)

        # Last candidate list seen per category
        self._history: dict[str, list[CandidateSource]] = {}

    # -------------------------------------------------------------------------
    # Directory management & introspection
    # -------------------------------------------------------------------------

    def register_directory(self, directory: DirectorySearch) -> None:
        """Add a directory to search; names are unique."""
        if any(d.name == directory.name for d in self._directories):
            logger.debug(f"Directory {directory.name} already registered")
            return
        self._directories.append(directory)
        logger.info(
            f"Registered directory {directory.name} (search cost {directory.search_cost:.4f})"
        )

    @property
    def directories(self) -> list[str]:
        return [d.name for d in self._directories]

    def history(self, category: str) -> list[CandidateSource]:
        """Candidates seen by the most recent discovery for ``category``."""
        return list(self._history.get(category.strip().lower(), []))

    def has_discovered(self, category: str) -> bool:
        return category.strip().lower() in self._history

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def discover(
        self,
        topic: Topic,
        budget: float,
        max_candidates: int = 10,
        *,
        question: str | None = None,
    ) -> DiscoveryResult:
        """
        Search, validate and register new sources for ``topic``.

        Args:
            topic: Topic whose category lacks sources.
            budget: Hard spending cap for searches and test fetches.
            max_candidates: Stop collecting once this many unique candidates exist.
            question: Question text passed along with test fetches.

        Returns:
            DiscoveryResult; never raises for directory or candidate failures.
        """
        start = time.perf_counter()
        category = topic.category
        budget = max(budget, 0.0)
        queries = await self._build_queries(topic, question)

        logger.info(
            f"Discovering sources for '{category}' with budget {budget:.4f}: {queries}"
        )

        candidates, cost_spent, failed = await self._search_directories(
            queries, category, budget, max_candidates
        )
        self._history[category] = list(candidates)

        # Reserve test-fetch costs up front so parallel validation cannot overspend
        to_validate: list[CandidateSource] = []
        for candidate in candidates:
            if cost_spent + candidate.cost_per_call > budget + _COST_EPSILON:
                logger.debug(
                    f"Skipping candidate {candidate.name}: cost {candidate.cost_per_call} "
                    f"exceeds remaining budget"
                )
                continue
            cost_spent += candidate.cost_per_call
            to_validate.append(candidate)

        passed = await self._validate_all(to_validate, question or topic.category)

        registered: list[str] = []
        for candidate in passed:
            source = self._register(candidate, category)
            if source is not None:
                registered.append(source.id)

        status = DiscoveryStatus.PARTIAL_FAILURE if failed else DiscoveryStatus.COMPLETE
        elapsed = (time.perf_counter() - start) * 1000
        logger.info(
            f"Discovery for '{category}' finished: {len(registered)} registered, "
            f"{len(to_validate)} tried, cost {cost_spent:.4f}, status {status.value}, "
            f"{elapsed:.0f}ms"
        )

        return DiscoveryResult(
            category=category,
            queries=queries,
            registered=registered,
            candidates_tried=len(to_validate),
            cost_spent=cost_spent,
            status=status,
            failed_directories=failed,
        )

    async def _build_queries(self, topic: Topic, question: str | None) -> list[str]:
        queries: list[str] = []
        if self._query_generator is not None:
            try:
                generated = await asyncio.wait_for(
                    self._query_generator.generate_queries(topic, question),
                    timeout=self._query_timeout,
                )
                queries = normalize_queries(generated)
            except (ClassificationError, TimeoutError) as e:
                logger.warning(f"Query generation failed ({e}); using keyword expansion")

        if len(queries) < MIN_QUERIES:
            queries = normalize_queries(queries + expand_search_queries(topic))
        return queries

    async def _search_directories(
        self,
        queries: list[str],
        category: str,
        budget: float,
        max_candidates: int,
    ) -> tuple[list[CandidateSource], float, list[str]]:
        """Search directories in order; returns (unique candidates, cost, failed names)."""
        candidates: list[CandidateSource] = []
        seen_endpoints: set[str] = set()
        cost_spent = 0.0
        failed: list[str] = []

        for directory in self._directories:
            if len(candidates) >= max_candidates:
                break
            declared = max(directory.search_cost, 0.0)
            if cost_spent + declared > budget + _COST_EPSILON:
                logger.debug(f"Budget exhausted before searching {directory.name}")
                continue

            try:
                found, charged = await asyncio.wait_for(
                    directory.search(queries, category),
                    timeout=self._search_timeout,
                )
            except (DirectorySearchError, TimeoutError) as e:
                logger.warning(f"Directory {directory.name} failed: {e or type(e).__name__}")
                failed.append(directory.name)
                # The call may have been billed; account for the declared cost
                cost_spent += declared
                continue

            # Never charge more than the declared search cost
            cost_spent += min(max(charged, 0.0), declared)

            for candidate in found:
                key = _endpoint_key(candidate.endpoint)
                if key in seen_endpoints or self._already_serves(candidate, category):
                    continue
                seen_endpoints.add(key)
                candidates.append(candidate)
                if len(candidates) >= max_candidates:
                    break

            logger.debug(f"Directory {directory.name} returned {len(found)} candidate(s)")

        return candidates, cost_spent, failed

    def _already_serves(self, candidate: CandidateSource, category: str) -> bool:
        existing = self._catalog.get(candidate.source_id)
        return existing is not None and existing.active and existing.serves(category)

    async def _validate_all(
        self,
        candidates: list[CandidateSource],
        question: str,
    ) -> list[CandidateSource]:
        if not candidates:
            return []
        semaphore = asyncio.Semaphore(self._max_parallel)

        async def _bounded(candidate: CandidateSource) -> bool:
            async with semaphore:
                return await self._validate(candidate, question)

        results = await asyncio.gather(*(_bounded(c) for c in candidates))
        return [c for c, ok in zip(candidates, results, strict=True) if ok]

    async def _validate(self, candidate: CandidateSource, question: str) -> bool:
        """One test fetch; passes if it succeeds in time with a JSON payload."""
        try:
            if self._payment_authorizer is not None and candidate.cost_per_call > 0:
                await self._payment_authorizer.authorize(
                    candidate.source_id, candidate.cost_per_call
                )
            response = await asyncio.wait_for(
                self._fetcher.fetch_verified(candidate.endpoint, question),
                timeout=self._validation_timeout,
            )
            json.loads(response.raw)
        except PaymentDenied as e:
            logger.debug(f"Candidate {candidate.name} payment denied: {e}")
            return False
        except TimeoutError:
            logger.debug(f"Candidate {candidate.name} timed out after {self._validation_timeout}s")
            return False
        except FetchError as e:
            logger.debug(f"Candidate {candidate.name} fetch failed: {e}")
            return False
        except (UnicodeDecodeError, ValueError):
            logger.debug(f"Candidate {candidate.name} returned an unparseable payload")
            return False
        return True

    def _register(self, candidate: CandidateSource, category: str) -> Source | None:
        source = candidate.to_source(category)
        existing = self._catalog.get(source.id)
        if existing is not None:
            source = source.model_copy(
                update={"categories": existing.categories | source.categories}
            )
        try:
            return self._catalog.register(source)
        except SourceRegistrationError as e:
            logger.warning(f"Discovered source {source.id} rejected: {e}")
            return None
