"""Health check endpoint, public."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from src.dependencies import AppSettings, CompanionDep

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(companion: CompanionDep, settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the process is up.

    Also reports the polling state of each stream and the device profile.
    """
    profile = companion.reconciler.profile
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "platform": profile.platform,
        "palette": profile.palette_class.value,
        "streams": companion.scheduler.states(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
