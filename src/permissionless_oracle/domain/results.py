"""
Domain Results
==============

Value objects produced by a research call: per-source query results,
discovery outcomes and the final consensus. These flow from the engine
to the API response and into the proof chain.
"""

from __future__ import annotations

from enum import StrEnum, auto

from pydantic import BaseModel, Field, model_validator

from permissionless_oracle.domain.entities import DataPoint


class QueryErrorKind(StrEnum):
    """Why a single source query produced no data point."""

    PAYMENT_DENIED = auto()
    TIMEOUT = auto()
    FETCH_ERROR = auto()
    PARSE_ERROR = auto()
    PROOF_ERROR = auto()
    CANCELLED = auto()


class SourceQueryResult(BaseModel):
    """
    Outcome of querying one source: either a data point or an error.

    Exactly one of ``data_point`` and ``error_kind`` is set.
    """

    source_id: str
    data_point: DataPoint | None = None
    error_kind: QueryErrorKind | None = None
    error: str | None = Field(default=None, description="Human-readable failure reason")
    cost: float = Field(default=0.0, ge=0.0, description="Amount spent on this query")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _exactly_one(self) -> SourceQueryResult:
        if (self.data_point is None) == (self.error_kind is None):
            raise ValueError("SourceQueryResult needs either a data_point or an error_kind")
        return self

    @property
    def ok(self) -> bool:
        return self.data_point is not None

    @classmethod
    def success(cls, data_point: DataPoint, cost: float = 0.0) -> SourceQueryResult:
        return cls(source_id=data_point.source_id, data_point=data_point, cost=cost)

    @classmethod
    def failure(
        cls,
        source_id: str,
        kind: QueryErrorKind,
        error: str,
        cost: float = 0.0,
    ) -> SourceQueryResult:
        return cls(source_id=source_id, error_kind=kind, error=error, cost=cost)


class DiscoveryStatus(StrEnum):
    """Overall status of a discovery run."""

    COMPLETE = auto()  # Every directory answered
    PARTIAL_FAILURE = auto()  # At least one directory failed and was skipped


class DiscoveryResult(BaseModel):
    """Outcome of one DiscoveryEngine.discover call."""

    category: str
    queries: list[str] = Field(default_factory=list)
    registered: list[str] = Field(
        default_factory=list, description="Ids of sources registered by this run"
    )
    candidates_tried: int = Field(default=0, ge=0)
    cost_spent: float = Field(default=0.0, ge=0.0)
    status: DiscoveryStatus = Field(default=DiscoveryStatus.COMPLETE)
    failed_directories: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class ResearchOptions(BaseModel):
    """Per-call knobs for ConsensusEngine.research_question."""

    budget: float = Field(default=0.50, ge=0.0, description="Maximum total spend")
    min_sources: int = Field(default=5, ge=1)
    allow_discovery: bool = Field(default=True)
    max_sources: int = Field(default=10, ge=1, le=10, description="Fan-out cap")
    deadline_seconds: float | None = Field(
        default=None, gt=0.0, description="Overall fan-out deadline; collected answers are kept"
    )

    model_config = {"frozen": True}


class ConsensusResult(BaseModel):
    """
    Final answer for a research call with full provenance.

    ``included_sources`` and ``excluded_outliers`` are disjoint;
    ``proof_hash`` is the root of the audit trail in the proof chain.
    """

    question_hash: str
    question: str
    category: str
    outcome: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    consensus_strength: float = Field(..., ge=0.0, le=1.0)
    included_sources: list[str] = Field(default_factory=list)
    excluded_outliers: list[str] = Field(default_factory=list)
    proof_hash: str
    total_cost: float = Field(default=0.0, ge=0.0)

    # Provenance
    data_points: list[DataPoint] = Field(default_factory=list)
    failed_sources: dict[str, QueryErrorKind] = Field(default_factory=dict)
    discovered_sources: list[str] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, ge=0.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _disjoint(self) -> ConsensusResult:
        overlap = set(self.included_sources) & set(self.excluded_outliers)
        if overlap:
            raise ValueError(f"Sources both included and excluded: {sorted(overlap)}")
        return self
