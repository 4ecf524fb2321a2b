"""
Source Catalog Endpoints
========================

Read-only views of the source catalog and reputation tracker.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from permissionless_oracle.domain.entities import ReputationRecord, Source
from permissionless_oracle.domain.services.consensus_engine import ConsensusEngine
from permissionless_oracle.infrastructure.dependencies import get_consensus_engine

router = APIRouter()


class SourceSummary(BaseModel):
    """Catalog entry as exposed by the API."""

    id: str
    name: str
    endpoint: str
    categories: list[str]
    cost_per_call: float
    description: str
    discovered: bool
    active: bool
    registered_at: datetime

    @classmethod
    def from_source(cls, source: Source) -> SourceSummary:
        return cls(
            id=source.id,
            name=source.name,
            endpoint=source.endpoint,
            categories=sorted(source.categories),
            cost_per_call=source.cost_per_call,
            description=source.description,
            discovered=source.discovered,
            active=source.active,
            registered_at=source.registered_at,
        )


class SourceListResponse(BaseModel):
    """Sources matching an optional category filter."""

    category: str | None
    total: int
    sources: list[SourceSummary]


class TopSourcesResponse(BaseModel):
    """Best performing sources first."""

    sources: list[ReputationRecord]


@router.get(
    "/sources",
    response_model=SourceListResponse,
    status_code=status.HTTP_200_OK,
    summary="List sources",
    description="List catalog sources, optionally only the active ones serving a category.",
)
async def list_sources(
    engine: Annotated[ConsensusEngine, Depends(get_consensus_engine)],
    category: Annotated[str | None, Query(max_length=100)] = None,
) -> SourceListResponse:
    sources = engine.list_sources(category)
    return SourceListResponse(
        category=category.strip().lower() if category else None,
        total=len(sources),
        sources=[SourceSummary.from_source(s) for s in sources],
    )


@router.get(
    "/sources/top",
    response_model=TopSourcesResponse,
    status_code=status.HTTP_200_OK,
    summary="Top sources by reputation",
)
async def top_sources(
    engine: Annotated[ConsensusEngine, Depends(get_consensus_engine)],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> TopSourcesResponse:
    return TopSourcesResponse(sources=engine.top_sources(limit))


@router.get(
    "/sources/{source_id}/reputation",
    response_model=ReputationRecord,
    status_code=status.HTTP_200_OK,
    summary="Source reputation",
    description="Rolling accuracy statistics for one source.",
    responses={404: {"description": "Unknown source"}},
)
async def source_reputation(
    source_id: str,
    engine: Annotated[ConsensusEngine, Depends(get_consensus_engine)],
) -> ReputationRecord:
    """UnknownSourceError is rendered as 404 by the application handler."""
    return engine.get_source_reputation(source_id)

