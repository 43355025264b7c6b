from __future__ import annotations

from fastapi import APIRouter, Request

from app.adapters.rate_limit.base import AbstractCounterStore

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check that pings the counter store.

    A store failure raises StoreAppError, answered with 503 by the global
    exception handler.

    Returns:
        dict: Status plus whether rate limiting is active.
    """

    store: AbstractCounterStore | None = getattr(request.app.state, "counter_store", None)
    if store is not None:
        await store.ping()

    return {
        "status": "ok",
        "rate_limiting": getattr(request.app.state, "rate_limiter", None) is not None,
    }
