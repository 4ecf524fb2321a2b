"""
Health Check Endpoints
======================

Liveness and readiness probes for container orchestration.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from permissionless_oracle.infrastructure.config import get_settings
from permissionless_oracle.infrastructure.dependencies import (
    get_consensus_engine_optional,
    get_llm_provider_optional,
    get_proof_store_optional,
)

router = APIRouter()


class HealthStatus(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: str
    environment: str
    checks: dict[str, bool] = Field(default_factory=dict)


class ReadinessStatus(BaseModel):
    """Readiness check response with service details."""

    ready: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    services: dict[str, dict[str, bool | str]] = Field(default_factory=dict)


async def _check_service(
    instance: Any,
    *,
    enabled: bool = True,
) -> tuple[dict[str, bool | str], bool]:
    if not enabled:
        return {"connected": False, "status": "disabled"}, True
    if instance is None:
        return {"connected": False, "status": "not_initialized"}, False

    try:
        is_healthy = await instance.health_check()
    except Exception:
        return {"connected": False, "status": "error"}, False
    return (
        {"connected": bool(is_healthy), "status": "healthy" if is_healthy else "unhealthy"},
        bool(is_healthy),
    )


@router.get(
    "/live",
    response_model=HealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Check if the API is alive and responding.",
)
async def liveness() -> HealthStatus:
    """
    Liveness probe for container orchestration.

    Always returns healthy if the service is running.
    """
    settings = get_settings()
    return HealthStatus(
        status="healthy",
        version=settings.api.version,
        environment=settings.environment,
    )


@router.get(
    "/ready",
    response_model=ReadinessStatus,
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    description="Check if the engine and its backing services are ready.",
)
async def readiness(
    engine: Annotated[Any, Depends(get_consensus_engine_optional)],
    proof_store: Annotated[Any, Depends(get_proof_store_optional)],
    llm: Annotated[Any, Depends(get_llm_provider_optional)],
) -> ReadinessStatus:
    """
    Readiness probe checking the engine, proof store and LLM.

    The LLM only counts when it is enabled; classification falls back
    to keyword routing otherwise.
    """
    settings = get_settings()
    services: dict[str, dict[str, bool | str]] = {}

    engine_ready = engine is not None
    services["engine"] = {
        "connected": engine_ready,
        "status": "healthy" if engine_ready else "not_initialized",
    }
    if engine_ready:
        services["engine"]["sources"] = str(len(engine.catalog))

    proof_status, proof_ready = await _check_service(proof_store)
    services["proof_store"] = proof_status

    llm_status, llm_ready = await _check_service(llm, enabled=settings.llm.enabled)
    services["llm"] = llm_status

    return ReadinessStatus(ready=engine_ready and proof_ready and llm_ready, services=services)


@router.get(
    "",
    response_model=HealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Simple health check endpoint.",
)
async def health() -> HealthStatus:
    """Basic health check - alias for liveness."""
    return await liveness()
