from __future__ import annotations

from fastapi import APIRouter

from craftgate.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers; never touches the limiter."""

    return {"status": "ok", "environment": settings.app_env}
