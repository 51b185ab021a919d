from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

SERVICE_NAME = "wine-reviewer-api"

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/api/v1/health")
def health_v1():
    return {
        "status": "UP",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
    }
