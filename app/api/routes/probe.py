from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Probe"])


@router.get("/test")
def probe() -> dict:
    """Rate limited endpoint used to exercise the limiter."""

    return {"message": "Request successful"}
