"""
Domain Layer
============

Core business entities, results and errors.
These are persistence-agnostic and contain no infrastructure dependencies.
"""

from permissionless_oracle.domain.entities import (
    CandidateSource,
    DataPoint,
    FetchedResponse,
    OriginProof,
    PaymentToken,
    ProofRecord,
    Question,
    ReputationRecord,
    Source,
    Topic,
)
from permissionless_oracle.domain.errors import (
    ClassificationFailed,
    InsufficientSources,
    NoConsensus,
    OracleError,
    ResearchError,
    SourceRegistrationError,
    UnknownSourceError,
)
from permissionless_oracle.domain.results import (
    ConsensusResult,
    DiscoveryResult,
    DiscoveryStatus,
    QueryErrorKind,
    ResearchOptions,
    SourceQueryResult,
)

__all__ = [
    # Entities
    "CandidateSource",
    "DataPoint",
    "FetchedResponse",
    "OriginProof",
    "PaymentToken",
    "ProofRecord",
    "Question",
    "ReputationRecord",
    "Source",
    "Topic",
    # Errors
    "ClassificationFailed",
    "InsufficientSources",
    "NoConsensus",
    "OracleError",
    "ResearchError",
    "SourceRegistrationError",
    "UnknownSourceError",
    # Results
    "ConsensusResult",
    "DiscoveryResult",
    "DiscoveryStatus",
    "QueryErrorKind",
    "ResearchOptions",
    "SourceQueryResult",
]
