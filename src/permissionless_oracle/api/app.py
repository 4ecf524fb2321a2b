"""
FastAPI Application Factory
===========================

Creates and configures the FastAPI application with routers and middleware.
"""

from __future__ import annotations

import secrets

import yaml
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse, Response
from fastapi.security import APIKeyHeader

from permissionless_oracle.api.routes import (
    health_router,
    proofs_router,
    research_router,
    sources_router,
)
from permissionless_oracle.domain.errors import (
    ClassificationFailed,
    InsufficientSources,
    NoConsensus,
    ResearchError,
    UnknownSourceError,
)
from permissionless_oracle.infrastructure.config import get_settings
from permissionless_oracle.infrastructure.dependencies import lifespan_manager

# API Key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# HTTP status for each fatal research error
RESEARCH_ERROR_STATUS: dict[type[ResearchError], int] = {
    ClassificationFailed: 502,
    InsufficientSources: 424,
    NoConsensus: 409,
}


async def verify_api_key(api_key: str | None = Depends(api_key_header)) -> bool:
    """Verify API key if authentication is enabled."""
    settings = get_settings()

    # If no API key configured, skip auth
    if not settings.api.api_key:
        return True

    if api_key and secrets.compare_digest(api_key, settings.api.api_key):
        return True

    raise HTTPException(
        status_code=401,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "X-API-Key"},
    )


async def research_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Render a fatal research error with its diagnostic context."""
    assert isinstance(exc, ResearchError)
    status_code = next(
        (code for cls, code in RESEARCH_ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    return ORJSONResponse(status_code=status_code, content={"detail": exc.context()})


async def unknown_source_handler(request: Request, exc: Exception) -> ORJSONResponse:
    return ORJSONResponse(status_code=404, content={"detail": str(exc)})


def create_app(*, enable_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api.title,
        version=settings.api.version,
        description=(
            "Permissionless oracle for prediction-market questions. Classifies a "
            "question, queries independent data sources in parallel, drops outliers "
            "and returns a trust-weighted consensus with a content-addressed proof."
        ),
        debug=settings.api.debug,
        lifespan=lifespan_manager if enable_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ResearchError, research_error_handler)
    app.add_exception_handler(UnknownSourceError, unknown_source_handler)

    # Include routers
    app.include_router(health_router, prefix="/health", tags=["Health"])
    app.include_router(
        research_router,
        prefix="/api/v1",
        tags=["Research"],
        dependencies=[Depends(verify_api_key)],
    )
    app.include_router(
        sources_router,
        prefix="/api/v1",
        tags=["Sources"],
        dependencies=[Depends(verify_api_key)],
    )
    app.include_router(
        proofs_router,
        prefix="/api/v1",
        tags=["Proofs"],
        dependencies=[Depends(verify_api_key)],
    )

    @app.get("/openapi.yaml", include_in_schema=False)
    def openapi_yaml() -> Response:
        schema = app.openapi()
        content = yaml.safe_dump(schema, sort_keys=False, allow_unicode=True)
        return Response(content=content, media_type="application/yaml")

    return app
