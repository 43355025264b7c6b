from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.probe import router as probe_router

__all__ = ["health_router", "probe_router"]
