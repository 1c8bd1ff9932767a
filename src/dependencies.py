"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.companion.pipeline import Companion
from src.config import Settings


async def get_companion(request: Request) -> Companion:
    """Return the companion created by the application lifespan."""
    companion: Companion | None = getattr(request.app.state, "companion", None)
    if companion is None:
        raise HTTPException(status_code=503, detail="Companion not started")
    return companion


async def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# Annotated shortcuts for route signatures
CompanionDep = Annotated[Companion, Depends(get_companion)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
