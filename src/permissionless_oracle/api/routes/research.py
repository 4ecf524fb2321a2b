"""
Research API Endpoints
======================

Primary API: answer a prediction-market question with a trust-weighted
consensus across independent sources.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from permissionless_oracle.domain.errors import ResearchError
from permissionless_oracle.domain.results import ConsensusResult, QueryErrorKind, ResearchOptions
from permissionless_oracle.domain.services.consensus_engine import ConsensusEngine
from permissionless_oracle.infrastructure.config import get_settings
from permissionless_oracle.infrastructure.dependencies import get_consensus_engine

router = APIRouter()
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Request/Response Schemas (API layer DTOs)
# -----------------------------------------------------------------------------


class ResearchRequest(BaseModel):
    """Request body for a research call."""

    question: str = Field(
        ...,
        min_length=1,
        max_length=2_000,
        description="Yes/no question to resolve.",
        examples=["Will Bitcoin exceed $100,000 by end of 2026?"],
    )
    budget: float | None = Field(
        default=None,
        ge=0.0,
        description="Maximum total spend. Defaults to the configured budget.",
    )
    min_sources: int | None = Field(
        default=None,
        ge=1,
        description="Minimum number of sources required. Defaults to configuration.",
    )
    max_sources: int | None = Field(default=None, ge=1, le=10)
    allow_discovery: bool = Field(
        default=True,
        description="Search source directories when too few sources are known.",
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Stop waiting for sources after this long and use collected answers.",
    )


class DataPointSummary(BaseModel):
    """One source answer in the API response."""

    source_id: str
    outcome: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    response_time_ms: float
    domain_verified: bool
    raw_response_hash: str
    cost: float


class ResearchResponse(BaseModel):
    """Response from the research endpoint."""

    request_id: str
    question_hash: str
    question: str
    category: str
    outcome: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    consensus_strength: float = Field(..., ge=0.0, le=1.0)
    included_sources: list[str]
    excluded_outliers: list[str]
    failed_sources: dict[str, QueryErrorKind]
    discovered_sources: list[str]
    data_points: list[DataPointSummary]
    proof_hash: str
    total_cost: float
    processing_time_ms: float


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post(
    "/research",
    response_model=ResearchResponse,
    status_code=status.HTTP_200_OK,
    summary="Research a question",
    description=(
        "Classify the question, query independent sources in parallel, drop "
        "outliers and return a trust-weighted outcome with a proof hash."
    ),
    responses={
        409: {"description": "No consensus: no inlier answers to vote on"},
        424: {"description": "Too few sources for the category, even after discovery"},
        502: {"description": "Question classification failed"},
    },
)
async def research(
    request: ResearchRequest,
    engine: Annotated[ConsensusEngine, Depends(get_consensus_engine)],
) -> ResearchResponse:
    """
    Research a yes/no question.

    Fatal research errors are rendered by the application's exception
    handlers with their diagnostic context.
    """
    request_id = str(uuid4())
    start = time.perf_counter()
    defaults = get_settings().consensus

    options = ResearchOptions(
        budget=request.budget if request.budget is not None else defaults.default_budget,
        min_sources=request.min_sources or defaults.min_sources,
        max_sources=request.max_sources or defaults.max_sources,
        allow_discovery=request.allow_discovery,
        deadline_seconds=request.deadline_seconds,
    )

    logger.info(
        "Research request started",
        extra={
            "request_id": request_id,
            "question_length": len(request.question),
            "budget": options.budget,
            "min_sources": options.min_sources,
        },
    )

    try:
        result: ConsensusResult = await engine.research_question(request.question, options)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid question: {e!s}",
        ) from e
    except ResearchError as e:
        logger.warning(
            "Research request failed",
            extra={
                "request_id": request_id,
                "error_type": type(e).__name__,
                "category": e.category,
                "sources_attempted": e.sources_attempted,
                "sources_succeeded": e.sources_succeeded,
            },
        )
        raise

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "Research request completed",
        extra={
            "request_id": request_id,
            "question_hash": result.question_hash,
            "category": result.category,
            "proof_hash": result.proof_hash,
            "processing_time_ms": round(elapsed_ms, 2),
        },
    )

    return ResearchResponse(
        request_id=request_id,
        question_hash=result.question_hash,
        question=result.question,
        category=result.category,
        outcome=result.outcome,
        confidence=result.confidence,
        consensus_strength=result.consensus_strength,
        included_sources=result.included_sources,
        excluded_outliers=result.excluded_outliers,
        failed_sources=result.failed_sources,
        discovered_sources=result.discovered_sources,
        data_points=[
            DataPointSummary(
                source_id=p.source_id,
                outcome=p.outcome,
                confidence=p.confidence,
                response_time_ms=p.response_time_ms,
                domain_verified=p.domain_verified,
                raw_response_hash=p.raw_response_hash,
                cost=p.cost,
            )
            for p in result.data_points
        ],
        proof_hash=result.proof_hash,
        total_cost=result.total_cost,
        processing_time_ms=result.processing_time_ms,
    )
