"""
Dependency Injection Container
==============================

Wires adapters to ports based on configuration and exposes FastAPI
dependency providers. The CLI reuses the same wiring through
``oracle_session``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from permissionless_oracle.adapters.outbound.classifier_llm import LLMClassifier
from permissionless_oracle.adapters.outbound.directory_apis_guru import APIsGuruDirectory
from permissionless_oracle.adapters.outbound.directory_static import StaticDirectory
from permissionless_oracle.adapters.outbound.fetcher_http import HTTPFetcher
from permissionless_oracle.adapters.outbound.llm_openai import OpenAILLMAdapter
from permissionless_oracle.adapters.outbound.payment_ledger import BudgetPaymentAuthorizer
from permissionless_oracle.adapters.outbound.proof_store_memory import InMemoryProofStore
from permissionless_oracle.adapters.outbound.proof_store_redis import RedisProofStore
from permissionless_oracle.domain.services.consensus_engine import ConsensusEngine, OutlierPolicy
from permissionless_oracle.domain.services.discovery_engine import DiscoveryEngine
from permissionless_oracle.domain.services.proof_chain import ProofChain
from permissionless_oracle.domain.services.question_router import (
    FallbackClassifier,
    get_keyword_classifier,
)
from permissionless_oracle.domain.services.reputation_tracker import ReputationTracker
from permissionless_oracle.domain.services.trust_models import (
    RawConfidenceTrust,
    ReputationWeightedTrust,
    TrustModelName,
)
from permissionless_oracle.infrastructure.config import Settings, get_settings
from permissionless_oracle.infrastructure.logging import configure_logging
from permissionless_oracle.infrastructure.seed_sources import build_catalog

if TYPE_CHECKING:
    from fastapi import FastAPI

    from permissionless_oracle.domain.services.source_catalog import SourceCatalog
    from permissionless_oracle.ports.classifier import Classifier, SearchQueryGenerator
    from permissionless_oracle.ports.directory_search import DirectorySearch
    from permissionless_oracle.ports.proof_store import ProofStore
    from permissionless_oracle.ports.trust_model import TrustModel

logger = logging.getLogger(__name__)

# Share of the classify timeout granted to the LLM before the keyword fallback
_LLM_CLASSIFY_SHARE = 0.8


# -----------------------------------------------------------------------------
# Singleton holders (initialized on app startup)
# -----------------------------------------------------------------------------

_llm_provider: OpenAILLMAdapter | None = None
_catalog: SourceCatalog | None = None
_reputation: ReputationTracker | None = None
_proof_store: ProofStore | None = None
_proof_chain: ProofChain | None = None
_fetcher: HTTPFetcher | None = None
_payment_authorizer: BudgetPaymentAuthorizer | None = None
_classifier: Classifier | None = None
_discovery_engine: DiscoveryEngine | None = None
_consensus_engine: ConsensusEngine | None = None


# -----------------------------------------------------------------------------
# Lifecycle management
# -----------------------------------------------------------------------------

# Track if logging has been configured (to avoid duplicate configuration)
_logging_configured = False


@asynccontextmanager
async def lifespan_manager(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
    """
    Manage application lifecycle: initialize and cleanup adapters.

    Usage in FastAPI:
        app = FastAPI(lifespan=lifespan_manager)
    """
    _configure_logging()

    await _initialize_adapters()
    try:
        yield {}
    finally:
        await _cleanup_adapters()


@asynccontextmanager
async def oracle_session(settings: Settings | None = None) -> AsyncIterator[ConsensusEngine]:
    """Initialize the container outside FastAPI (CLI) and yield the engine."""
    await _initialize_adapters(settings)
    try:
        yield await get_consensus_engine()
    finally:
        await _cleanup_adapters()


def _configure_logging() -> None:
    """Configure logging once per worker process."""
    global _logging_configured

    if _logging_configured:
        return

    settings = get_settings()
    configure_logging(settings.log_level, force=True)
    _logging_configured = True

    logger.info(f"Logging configured for worker process {os.getpid()}")


def _build_classifier(settings: Settings, catalog: SourceCatalog) -> tuple[
    Classifier, SearchQueryGenerator
]:
    global _llm_provider

    keyword = get_keyword_classifier()
    if not settings.llm.enabled:
        logger.info("Classifier: keyword routing (LLM disabled)")
        return keyword, keyword

    _llm_provider = OpenAILLMAdapter(settings.llm)
    llm_classifier = LLMClassifier(_llm_provider, catalog)
    logger.info(f"Classifier: LLM {settings.llm.model} with keyword fallback")
    generator: SearchQueryGenerator = (
        llm_classifier if settings.llm.generate_queries else keyword
    )
    # Leave part of the overall classify timeout for the keyword fallback
    primary_timeout = settings.consensus.classify_timeout_seconds * _LLM_CLASSIFY_SHARE
    return FallbackClassifier(llm_classifier, keyword, primary_timeout), generator


def _build_directories(settings: Settings) -> list[DirectorySearch]:
    directories: list[DirectorySearch] = []
    discovery = settings.discovery

    if discovery.curated_enabled:
        directories.append(StaticDirectory.with_defaults(search_cost=discovery.curated_search_cost))
    if discovery.static_directory_file:
        directories.append(StaticDirectory.from_yaml(discovery.static_directory_file))
    if discovery.apis_guru_enabled:
        directories.append(
            APIsGuruDirectory(
                list_url=discovery.apis_guru_url,
                search_cost=discovery.apis_guru_search_cost,
                timeout=discovery.search_timeout_seconds,
            )
        )
    return directories


def _build_trust_model(settings: Settings, reputation: ReputationTracker) -> TrustModel:
    if settings.consensus.trust_model == TrustModelName.REPUTATION_WEIGHTED:
        return ReputationWeightedTrust(reputation)
    return RawConfidenceTrust()


async def _initialize_adapters(settings: Settings | None = None) -> None:
    """
    Initialize all adapters based on configuration.

    This is where concrete adapter implementations are wired to ports.
    """
    global _catalog, _reputation, _proof_store, _proof_chain, _fetcher
    global _payment_authorizer, _classifier, _discovery_engine, _consensus_engine

    settings = settings or get_settings()
    logger.info(f"Initializing DI container - Environment: {settings.environment}")

    _catalog = build_catalog(settings.catalog.load_defaults, settings.catalog.seed_file)
    _reputation = ReputationTracker(_catalog)

    # Proof store: Redis when enabled, process memory otherwise
    if settings.redis.enabled:
        redis_store = RedisProofStore(settings.redis)
        await redis_store.connect()
        _proof_store = redis_store
    else:
        _proof_store = InMemoryProofStore()
        logger.info("Proof store: in-memory (Redis disabled)")
    _proof_chain = ProofChain(_proof_store)

    _fetcher = HTTPFetcher(
        timeout=settings.consensus.source_timeout_seconds,
        max_connections=settings.fetcher.max_connections,
        max_response_bytes=settings.fetcher.max_response_bytes,
        require_https=settings.fetcher.require_https,
    )
    await _fetcher.connect()

    _payment_authorizer = BudgetPaymentAuthorizer(
        spend_limit=settings.payment.spend_limit,
        max_per_call=settings.payment.max_per_call,
    )

    _classifier, query_generator = _build_classifier(settings, _catalog)

    _discovery_engine = None
    if settings.discovery.enabled:
        _discovery_engine = DiscoveryEngine(
            _catalog,
            _fetcher,
            _build_directories(settings),
            query_generator,
            _payment_authorizer,
            validation_timeout=settings.discovery.validation_timeout_seconds,
            search_timeout=settings.discovery.search_timeout_seconds,
            query_timeout=settings.consensus.classify_timeout_seconds,
            max_parallel_validations=settings.discovery.max_parallel_validations,
        )
        logger.info(f"Discovery enabled: {_discovery_engine.directories}")
    else:
        logger.info("Discovery disabled")

    _consensus_engine = ConsensusEngine(
        _catalog,
        _reputation,
        _proof_chain,
        _classifier,
        _fetcher,
        _payment_authorizer,
        _discovery_engine,
        trust_model=_build_trust_model(settings, _reputation),
        outlier_k=settings.consensus.outlier_k,
        outlier_policy=OutlierPolicy(settings.consensus.outlier_policy),
        max_parallel_queries=settings.consensus.max_parallel_queries,
        source_timeout=settings.consensus.source_timeout_seconds,
        payment_timeout=settings.consensus.payment_timeout_seconds,
        classify_timeout=settings.consensus.classify_timeout_seconds,
        discovery_budget_fraction=settings.discovery.budget_fraction,
        max_discovery_candidates=settings.discovery.max_candidates,
    )

    logger.info("DI container ready")


async def _cleanup_adapters() -> None:
    """
    Cleanup all adapter connections on shutdown.

    Uses asyncio.shield() to protect cleanup operations from task cancellation.
    Each disconnect is wrapped in try/except to ensure all adapters get cleaned up.
    """
    global _llm_provider, _catalog, _reputation, _proof_store, _proof_chain, _fetcher
    global _payment_authorizer, _classifier, _discovery_engine, _consensus_engine

    logger.info("Starting adapter cleanup...")

    _consensus_engine = None
    _discovery_engine = None
    _classifier = None

    if _fetcher is not None:
        try:
            await asyncio.shield(asyncio.wait_for(_fetcher.disconnect(), timeout=5.0))
            logger.debug("Disconnected fetcher")
        except TimeoutError:
            logger.warning("Fetcher disconnect timed out")
        except asyncio.CancelledError:
            logger.warning("Fetcher disconnect cancelled")
        except Exception as e:
            logger.warning(f"Fetcher disconnect failed: {e}")
        _fetcher = None

    if _llm_provider is not None:
        try:
            await asyncio.shield(asyncio.wait_for(_llm_provider.close(), timeout=5.0))
            logger.debug("Closed LLM provider")
        except TimeoutError:
            logger.warning("LLM provider close timed out")
        except asyncio.CancelledError:
            logger.warning("LLM provider close cancelled")
        except Exception as e:
            logger.warning(f"LLM provider close failed: {e}")
        _llm_provider = None

    if isinstance(_proof_store, RedisProofStore):
        try:
            await asyncio.shield(asyncio.wait_for(_proof_store.disconnect(), timeout=5.0))
            logger.debug("Disconnected proof store")
        except TimeoutError:
            logger.warning("Proof store disconnect timed out")
        except asyncio.CancelledError:
            logger.warning("Proof store disconnect cancelled")
        except Exception as e:
            logger.warning(f"Proof store disconnect failed: {e}")
    _proof_store = None
    _proof_chain = None
    _payment_authorizer = None
    _reputation = None
    _catalog = None

    logger.info("Adapter cleanup complete")


# -----------------------------------------------------------------------------
# FastAPI Dependency providers
# -----------------------------------------------------------------------------


async def get_consensus_engine() -> ConsensusEngine:
    """Dependency: Get consensus engine instance."""
    if _consensus_engine is None:
        raise RuntimeError("Consensus engine not initialized. Check adapter configuration.")
    return _consensus_engine


async def get_consensus_engine_optional() -> ConsensusEngine | None:
    """Dependency: Get consensus engine, or None before startup completes."""
    return _consensus_engine


async def get_proof_store_optional() -> ProofStore | None:
    """Dependency: Get proof store, or None before startup completes."""
    return _proof_store


async def get_llm_provider_optional() -> OpenAILLMAdapter | None:
    """Dependency: Get LLM provider, or None when the keyword classifier is used."""
    return _llm_provider
