"""Configuration page endpoints: read the configuration, open and close the page."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from src.dependencies import AppSettings, CompanionDep
from src.models.device import (
    ChangeStatus,
    ConfigurationChange,
    ConfigurationUrl,
    WebviewClosed,
)

router = APIRouter(prefix="/configuration", tags=["configuration"])


@router.get("")
async def get_configuration(companion: CompanionDep) -> dict[str, Any]:
    """Current configuration as the configuration page spells it."""
    return companion.reconciler.snapshot.to_payload()


@router.get("/url", response_model=ConfigurationUrl)
async def get_configuration_url(companion: CompanionDep, settings: AppSettings) -> Any:
    return {"url": companion.reconciler.configuration_url(settings.config_page_url)}


@router.post("/webview-closed", response_model=ConfigurationChange)
async def webview_closed(companion: CompanionDep, body: WebviewClosed) -> Any:
    if not body.response:
        return {
            "status": ChangeStatus.cancelled,
            "configuration": companion.reconciler.snapshot.to_payload(),
        }

    applied = await companion.handle_webview_closed(body.response)
    if applied is None:
        raise HTTPException(
            status_code=422,
            detail="Configuration rejected; the previous configuration is still in effect",
        )
    return {"status": ChangeStatus.applied, "configuration": applied.to_payload()}
