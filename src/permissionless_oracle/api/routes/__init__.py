"""Oracle API routes."""

from permissionless_oracle.api.routes.health import router as health_router
from permissionless_oracle.api.routes.proofs import router as proofs_router
from permissionless_oracle.api.routes.research import router as research_router
from permissionless_oracle.api.routes.sources import router as sources_router

__all__ = ["health_router", "proofs_router", "research_router", "sources_router"]
