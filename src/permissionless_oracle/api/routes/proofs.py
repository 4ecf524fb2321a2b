"""
Proof Endpoints
===============

Lookup and verification of content-addressed audit blobs.
"""

from __future__ import annotations

import base64
import binascii
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field

from permissionless_oracle.domain.services.consensus_engine import ConsensusEngine
from permissionless_oracle.domain.services.proof_chain import decode_record
from permissionless_oracle.infrastructure.dependencies import get_consensus_engine

router = APIRouter()

HashParam = Annotated[str, Path(pattern=r"^[0-9a-f]{64}$", description="SHA-256 hex digest")]


# -----------------------------------------------------------------------------
# Request/Response Schemas (API layer DTOs)
# -----------------------------------------------------------------------------


class VerifyProofRequest(BaseModel):
    """
    Request body for proof verification.

    With ``payload`` the bytes are hashed and compared against ``hash``.
    Without it the stored tree rooted at ``hash`` is re-verified.
    """

    hash: str = Field(..., pattern=r"^[0-9a-f]{64}$")
    payload: str | None = Field(default=None, description="Payload to check")
    encoding: Literal["utf-8", "base64"] = Field(default="utf-8")


class VerifyProofResponse(BaseModel):
    hash: str
    valid: bool
    mode: Literal["payload", "tree"]


class ProofResponse(BaseModel):
    """A stored blob, decoded when it is an audit record."""

    hash: str
    size_bytes: int
    is_record: bool
    record: dict[str, Any] | None = None
    payload_base64: str


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post(
    "/proofs/verify",
    response_model=VerifyProofResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify a proof",
)
async def verify_proof(
    request: VerifyProofRequest,
    engine: Annotated[ConsensusEngine, Depends(get_consensus_engine)],
) -> VerifyProofResponse:
    if request.payload is None:
        valid = await engine.verify_proof_tree(request.hash)
        return VerifyProofResponse(hash=request.hash, valid=valid, mode="tree")

    if request.encoding == "base64":
        try:
            payload = base64.b64decode(request.payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Invalid base64 payload: {e!s}",
            ) from e
    else:
        payload = request.payload.encode("utf-8")

    return VerifyProofResponse(
        hash=request.hash,
        valid=engine.verify_proof(request.hash, payload),
        mode="payload",
    )


@router.get(
    "/proofs/{proof_hash}",
    response_model=ProofResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a stored proof blob",
    responses={404: {"description": "No blob stored under this hash"}},
)
async def get_proof(
    proof_hash: HashParam,
    engine: Annotated[ConsensusEngine, Depends(get_consensus_engine)],
) -> ProofResponse:
    stored = await engine.proof_chain.get(proof_hash)
    if stored is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Proof {proof_hash} not found",
        )

    record = decode_record(stored.payload)
    return ProofResponse(
        hash=stored.hash,
        size_bytes=len(stored.payload),
        is_record=record is not None,
        record=record,
        payload_base64=base64.b64encode(stored.payload).decode("ascii"),
    )
