"""
Consensus Engine
================

Orchestrator and statistical core. The single entry point is
``research_question``:

1. Classify the question into a topic (fatal on failure)
2. Look up sources for the topic's category
3. Trigger discovery with a sub-budget when too few sources are known
4. Fan out to up to 10 sources in parallel under the remaining budget
5. Drop outliers (MAD) and take a trust-weighted vote over the inliers
6. Grade every answering source in the reputation tracker
7. Commit the audit trail to the proof chain

Each source query is an independent task with its own timeout and
produces a SourceQueryResult; one failing source never cancels or
delays its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any

from permissionless_oracle.domain.entities import DataPoint, Question, Source, Topic
from permissionless_oracle.domain.errors import (
    ClassificationFailed,
    InsufficientSources,
    NoConsensus,
)
from permissionless_oracle.domain.results import (
    ConsensusResult,
    QueryErrorKind,
    ResearchOptions,
    SourceQueryResult,
)
from permissionless_oracle.domain.services.outlier_filter import DEFAULT_K, detect_outliers
from permissionless_oracle.domain.services.response_parser import ParserRegistry
from permissionless_oracle.domain.services.trust_models import RawConfidenceTrust, weighted_vote
from permissionless_oracle.ports.classifier import ClassificationError
from permissionless_oracle.ports.fetcher import FetchError
from permissionless_oracle.ports.payment_authorizer import PaymentDenied
from permissionless_oracle.ports.proof_store import ProofStoreError
from permissionless_oracle.ports.response_parser import ResponseParseError

if TYPE_CHECKING:
    from permissionless_oracle.domain.entities import ReputationRecord
    from permissionless_oracle.domain.services.discovery_engine import DiscoveryEngine
    from permissionless_oracle.domain.services.outlier_filter import OutlierReport
    from permissionless_oracle.domain.services.proof_chain import ProofChain
    from permissionless_oracle.domain.services.reputation_tracker import ReputationTracker
    from permissionless_oracle.domain.services.source_catalog import SourceCatalog
    from permissionless_oracle.domain.services.trust_models import VoteTally
    from permissionless_oracle.ports.classifier import Classifier
    from permissionless_oracle.ports.fetcher import Fetcher
    from permissionless_oracle.ports.payment_authorizer import PaymentAuthorizer
    from permissionless_oracle.ports.trust_model import TrustModel

logger = logging.getLogger(__name__)

MAX_FANOUT = 10
_COST_EPSILON = 1e-9


class OutlierPolicy(StrEnum):
    """How excluded outliers are graded in the reputation tracker."""

    PENALIZE = auto()  # Outliers count as incorrect answers
    EXEMPT = auto()  # Outliers are not graded at all


class ConsensusEngine:
    """
    Researches prediction-market questions across independent sources.

    The catalog, tracker and proof chain are explicit instances so
    several engines (or tests) never share hidden state.
    """

    def __init__(
        self,
        catalog: SourceCatalog,
        reputation: ReputationTracker,
        proof_chain: ProofChain,
        classifier: Classifier,
        fetcher: Fetcher,
        payment_authorizer: PaymentAuthorizer,
        discovery: DiscoveryEngine | None = None,
        *,
        trust_model: TrustModel | None = None,
        parsers: ParserRegistry | None = None,
        outlier_k: float = DEFAULT_K,
        outlier_policy: OutlierPolicy = OutlierPolicy.PENALIZE,
        max_parallel_queries: int = MAX_FANOUT,
        source_timeout: float = 10.0,
        payment_timeout: float = 5.0,
        classify_timeout: float = 30.0,
        discovery_budget_fraction: float = 0.2,
        max_discovery_candidates: int = 10,
    ) -> None:
        """
        Initialize the engine.

        Args:
            catalog: Shared source registry.
            reputation: Shared per-source statistics.
            proof_chain: Audit trail store.
            classifier: Maps questions to topics.
            fetcher: Verified network fetches.
            payment_authorizer: Per-query spend authorization.
            discovery: Optional discovery engine for unknown categories.
            trust_model: Vote weighting; raw confidence when omitted.
            parsers: Response parser registry.
            outlier_k: MAD multiplier for outlier detection.
            outlier_policy: Whether outliers are graded as wrong.
            max_parallel_queries: Concurrent source queries (at most 10).
            source_timeout: Seconds allowed per source fetch.
            payment_timeout: Seconds allowed per payment authorization.
            classify_timeout: Seconds allowed for classification.
            discovery_budget_fraction: Share of the budget discovery may spend.
            max_discovery_candidates: Candidate cap passed to discovery.
        """
        if not 0.0 <= discovery_budget_fraction <= 1.0:
            raise ValueError("discovery_budget_fraction must be within [0, 1]")
        self._catalog = catalog
        self._reputation = reputation
        self._proof_chain = proof_chain
        self._classifier = classifier
        self._fetcher = fetcher
        self._payment_authorizer = payment_authorizer
        self._discovery = discovery
        self._trust_model = trust_model or RawConfidenceTrust()
        self._parsers = parsers or ParserRegistry()
        self._outlier_k = outlier_k
        self._outlier_policy = outlier_policy
        self._max_parallel = max(1, min(max_parallel_queries, MAX_FANOUT))
        self._source_timeout = source_timeout
        self._payment_timeout = payment_timeout
        self._classify_timeout = classify_timeout
        self._discovery_fraction = discovery_budget_fraction
        self._max_discovery_candidates = max_discovery_candidates

    # -------------------------------------------------------------------------
    # Research
    # -------------------------------------------------------------------------

    async def research_question(
        self,
        question: str | Question,
        options: ResearchOptions | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ConsensusResult:
        """
        Answer a question with a trust-weighted consensus.

        Args:
            question: Question text or a prebuilt Question.
            options: Budget, minimum sources, discovery switch, deadline.
            cancel_event: When set, in-flight source queries are cancelled
                and the answers already collected are used.

        Returns:
            ConsensusResult with full provenance.

        Raises:
            ClassificationFailed: The classifier failed or timed out.
            InsufficientSources: Too few sources even after discovery.
            NoConsensus: No inlier answers were left to vote on.
        """
        start = time.perf_counter()
        options = options or ResearchOptions()
        if isinstance(question, str):
            question = Question.from_text(question)

        topic = await self._classify(question)
        category = topic.category
        total_cost = 0.0

        # === Source lookup & discovery ===
        sources = self._catalog.find_by_category(category)
        discovered: list[str] = []
        if (
            len(sources) < options.min_sources
            and options.allow_discovery
            and self._discovery is not None
        ):
            sub_budget = options.budget * self._discovery_fraction
            logger.info(
                f"Only {len(sources)} source(s) for '{category}' "
                f"(need {options.min_sources}); discovering with {sub_budget:.4f}"
            )
            discovery = await self._discovery.discover(
                topic,
                sub_budget,
                self._max_discovery_candidates,
                question=question.text,
            )
            total_cost += discovery.cost_spent
            discovered = list(discovery.registered)
            sources = self._catalog.find_by_category(category)

        if len(sources) < options.min_sources:
            raise InsufficientSources(
                f"{len(sources)} source(s) available for '{category}', "
                f"{options.min_sources} required",
                category=category,
                available=len(sources),
                required=options.min_sources,
            )

        # === Parallel fan-out ===
        selected = self._select_sources(
            sources, options.budget - total_cost, min(options.max_sources, MAX_FANOUT)
        )
        logger.info(
            f"Querying {len(selected)} source(s) for {question.content_hash[:12]} "
            f"[{category}]: {[s.id for s in selected]}"
        )
        results = await self._fan_out(
            selected, question, options.deadline_seconds, cancel_event
        )
        total_cost += sum(r.cost for r in results)

        data_points = sorted(
            (r.data_point for r in results if r.data_point is not None),
            key=lambda p: p.source_id,
        )
        failed = {r.source_id: r.error_kind for r in results if r.error_kind is not None}

        # === Outliers & weighted vote ===
        report = detect_outliers(data_points, self._outlier_k)
        tally = weighted_vote(report.inliers, self._trust_model)
        if not report.inliers or tally.total_weight <= 0:
            raise NoConsensus(
                f"No inlier answers for '{category}' "
                f"({len(data_points)} of {len(selected)} source(s) answered)",
                category=category,
                sources_attempted=len(selected),
                sources_succeeded=len(data_points),
            )

        self._grade_sources(report, tally.outcome)

        # === Audit trail ===
        included = [p.source_id for p in report.inliers]
        excluded = [p.source_id for p in report.outliers]
        proof_hash = await self._commit_proof(
            question=question,
            topic=topic,
            data_points=data_points,
            report=report,
            tally=tally,
            failed=failed,
            total_cost=total_cost,
        )

        elapsed = (time.perf_counter() - start) * 1000
        logger.info(
            f"Consensus for {question.content_hash[:12]}: outcome={tally.outcome} "
            f"confidence={tally.confidence:.2f} strength={tally.strength:.2f} "
            f"inliers={len(included)} outliers={len(excluded)} "
            f"cost={total_cost:.4f} ({elapsed:.0f}ms)"
        )

        return ConsensusResult(
            question_hash=question.content_hash,
            question=question.text,
            category=category,
            outcome=tally.outcome,
            confidence=tally.confidence,
            consensus_strength=tally.strength,
            included_sources=included,
            excluded_outliers=excluded,
            proof_hash=proof_hash,
            total_cost=total_cost,
            data_points=data_points,
            failed_sources=failed,
            discovered_sources=discovered,
            processing_time_ms=elapsed,
        )

    async def _classify(self, question: Question) -> Topic:
        try:
            return await asyncio.wait_for(
                self._classifier.classify(question.text),
                timeout=self._classify_timeout,
            )
        except TimeoutError as e:
            raise ClassificationFailed(
                f"Classifier timed out after {self._classify_timeout}s"
            ) from e
        except ClassificationError as e:
            raise ClassificationFailed(f"Classification failed: {e}") from e
        except ValueError as e:
            # Malformed topic from the classifier (e.g. blank category)
            raise ClassificationFailed(f"Classifier returned an invalid topic: {e}") from e
        except Exception as e:
            logger.exception("Classifier raised an unexpected error")
            raise ClassificationFailed(f"Classifier error: {e}") from e

    def _select_sources(self, sources: list[Source], budget: float, limit: int) -> list[Source]:
        """
        Pick up to ``limit`` sources whose cumulative cost fits ``budget``.

        Better reputation first; ties by id so selection is deterministic.
        """

        def rank(source: Source) -> tuple[float, int, str]:
            record = self._reputation.get(source.id)
            return (-record.success_rate, -record.total_queries, source.id)

        selected: list[Source] = []
        committed = 0.0
        for source in sorted(sources, key=rank):
            if len(selected) >= limit:
                break
            if committed + source.cost_per_call > budget + _COST_EPSILON:
                logger.debug(f"Skipping {source.id}: cost {source.cost_per_call} over budget")
                continue
            committed += source.cost_per_call
            selected.append(source)
        return selected

    async def _fan_out(
        self,
        sources: list[Source],
        question: Question,
        deadline_seconds: float | None,
        cancel_event: asyncio.Event | None,
    ) -> list[SourceQueryResult]:
        """
        Query sources concurrently, bounded by a semaphore.

        Stops early at the deadline or when ``cancel_event`` fires; answers
        already collected are kept and the rest are marked cancelled. If
        the calling task itself is cancelled, every child is cancelled and
        the cancellation propagates.
        """
        if not sources:
            return []

        semaphore = asyncio.Semaphore(self._max_parallel)
        # Source ids whose payment went through; their cost stands even if cancelled
        authorized: set[str] = set()
        tasks: dict[asyncio.Task[SourceQueryResult], Source] = {
            asyncio.create_task(
                self._bounded_query(semaphore, source, question, authorized),
                name=f"query:{source.id}",
            ): source
            for source in sources
        }
        cancel_waiter: asyncio.Task[Any] | None = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())

        results: list[SourceQueryResult] = []
        remaining: set[asyncio.Task[Any]] = set(tasks)
        deadline = None if deadline_seconds is None else time.perf_counter() + deadline_seconds
        stopped_reason: str | None = None

        try:
            while remaining:
                wait_set = set(remaining)
                if cancel_waiter is not None:
                    wait_set.add(cancel_waiter)

                timeout = None
                if deadline is not None:
                    timeout = deadline - time.perf_counter()
                    if timeout <= 0:
                        stopped_reason = "deadline reached"
                        break

                done, _ = await asyncio.wait(
                    wait_set, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is cancel_waiter:
                        continue
                    remaining.discard(task)
                    results.append(task.result())

                if cancel_waiter is not None and cancel_waiter.done():
                    stopped_reason = "cancelled by caller"
                    break
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

        if remaining:
            logger.info(
                f"Fan-out stopped ({stopped_reason}) with {len(remaining)} "
                f"quer{'y' if len(remaining) == 1 else 'ies'} in flight; "
                f"keeping {len(results)} collected result(s)"
            )
            for task in remaining:
                task.cancel()
            await asyncio.gather(*remaining, return_exceptions=True)
            for task in remaining:
                if not task.cancelled() and task.exception() is None:
                    results.append(task.result())
                else:
                    source = tasks[task]
                    results.append(
                        SourceQueryResult.failure(
                            source.id,
                            QueryErrorKind.CANCELLED,
                            stopped_reason or "cancelled",
                            cost=source.cost_per_call if source.id in authorized else 0.0,
                        )
                    )

        return results

    async def _bounded_query(
        self,
        semaphore: asyncio.Semaphore,
        source: Source,
        question: Question,
        authorized: set[str],
    ) -> SourceQueryResult:
        async with semaphore:
            try:
                return await self._query_source(source, question, authorized)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # An adapter leaked an unexpected error; isolate it to this source
                logger.exception(f"Unexpected error querying {source.id}")
                return SourceQueryResult.failure(source.id, QueryErrorKind.FETCH_ERROR, str(e))

    async def _query_source(
        self, source: Source, question: Question, authorized: set[str]
    ) -> SourceQueryResult:
        """Authorize, fetch, store and parse one source's answer."""
        # Payment
        try:
            await asyncio.wait_for(
                self._payment_authorizer.authorize(source.id, source.cost_per_call),
                timeout=self._payment_timeout,
            )
        except PaymentDenied as e:
            logger.info(f"Payment denied for {source.id}: {e}")
            return SourceQueryResult.failure(source.id, QueryErrorKind.PAYMENT_DENIED, str(e))
        except TimeoutError:
            logger.info(f"Payment authorization for {source.id} timed out")
            return SourceQueryResult.failure(
                source.id, QueryErrorKind.TIMEOUT, "payment authorization timed out"
            )
        authorized.add(source.id)
        cost = source.cost_per_call

        # Fetch
        fetch_start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._fetcher.fetch_verified(source.endpoint, question.text),
                timeout=self._source_timeout,
            )
        except TimeoutError:
            logger.info(f"Source {source.id} timed out after {self._source_timeout}s")
            return SourceQueryResult.failure(
                source.id, QueryErrorKind.TIMEOUT, "fetch timed out", cost=cost
            )
        except FetchError as e:
            logger.info(f"Source {source.id} fetch failed: {e}")
            return SourceQueryResult.failure(
                source.id, QueryErrorKind.FETCH_ERROR, str(e), cost=cost
            )
        response_time_ms = (time.perf_counter() - fetch_start) * 1000

        # Proof
        try:
            raw_hash = await self._proof_chain.store(response.raw)
        except ProofStoreError as e:
            logger.warning(f"Could not store proof for {source.id}: {e}")
            return SourceQueryResult.failure(
                source.id, QueryErrorKind.PROOF_ERROR, str(e), cost=cost
            )

        # Parse
        parser = self._parsers.resolve(source.parser)
        try:
            parsed = parser.parse(response.raw, question.text)
        except ResponseParseError as e:
            logger.info(f"Source {source.id} response unparseable: {e}")
            return SourceQueryResult.failure(
                source.id, QueryErrorKind.PARSE_ERROR, str(e), cost=cost
            )

        data_point = DataPoint(
            source_id=source.id,
            raw_response_hash=raw_hash,
            outcome=parsed.outcome,
            confidence=min(max(parsed.confidence, 0.0), 1.0),
            response_time_ms=response_time_ms,
            domain_verified=response.origin.verified,
            cost=cost,
        )
        logger.debug(
            f"Source {source.id}: outcome={data_point.outcome} "
            f"confidence={data_point.confidence:.2f} ({response_time_ms:.0f}ms)"
        )
        return SourceQueryResult.success(data_point, cost=cost)

    def _grade_sources(self, report: OutlierReport, outcome: bool) -> None:
        for point in report.inliers:
            self._reputation.update(
                point.source_id,
                point.outcome == outcome,
                point.response_time_ms,
                point.confidence,
            )
        if self._outlier_policy is OutlierPolicy.PENALIZE:
            for point in report.outliers:
                self._reputation.update(
                    point.source_id, False, point.response_time_ms, point.confidence
                )

    async def _commit_proof(
        self,
        *,
        question: Question,
        topic: Topic,
        data_points: list[DataPoint],
        report: OutlierReport,
        tally: VoteTally,
        failed: dict[str, QueryErrorKind],
        total_cost: float,
    ) -> str:
        """Store the root audit record referencing every raw response."""
        metadata = {
            "question": question.text,
            "question_hash": question.content_hash,
            "category": topic.category,
            "keywords": topic.keywords,
            "classifier": self._classifier.classifier_name,
            "trust_model": self._trust_model.model_name,
            "outlier_policy": self._outlier_policy.value,
            "data_points": [p.model_dump(mode="json") for p in data_points],
            "outlier_filter": {
                "k": self._outlier_k,
                "median": report.median,
                "mad": report.mad,
                "scale": report.scale,
                "threshold": report.threshold,
            },
            "included_sources": [p.source_id for p in report.inliers],
            "excluded_outliers": [p.source_id for p in report.outliers],
            "failed_sources": {k: v.value for k, v in sorted(failed.items())},
            "result": {
                "outcome": tally.outcome,
                "confidence": tally.confidence,
                "consensus_strength": tally.strength,
                "yes_weight": tally.yes_weight,
                "no_weight": tally.no_weight,
                "total_cost": total_cost,
            },
            "committed_at": datetime.now(UTC).isoformat(),
        }
        children = sorted({p.raw_response_hash for p in data_points})
        return await self._proof_chain.store_record(children, metadata)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_source_reputation(self, source_id: str) -> ReputationRecord:
        return self._reputation.get(source_id)

    def list_sources(self, category: str | None = None) -> list[Source]:
        if category:
            return self._catalog.find_by_category(category)
        return self._catalog.all()

    def top_sources(self, limit: int = 10) -> list[ReputationRecord]:
        return self._reputation.top(limit)

    def verify_proof(self, hash_: str, payload: bytes) -> bool:
        return self._proof_chain.verify(hash_, payload)

    async def verify_proof_tree(self, root_hash: str) -> bool:
        return await self._proof_chain.verify_tree(root_hash)

    @property
    def proof_chain(self) -> ProofChain:
        return self._proof_chain

    @property
    def catalog(self) -> SourceCatalog:
        return self._catalog
