"""Liveness check for load balancers."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from localoco.config import settings
from localoco.onboarding.store import SessionStore
from localoco.routers.onboarding import get_store

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(store: SessionStore = Depends(get_store)):
    """No upstream calls; reports how many signups are in progress."""
    return {
        "status": "ok",
        "service": "localoco-onboarding",
        "environment": settings.environment,
        "active_sessions": len(store),
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
