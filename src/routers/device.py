"""Watch bridge endpoints: device messages in, delivered messages out."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from src.companion.channel import OutboxTransport
from src.companion.message_keys import to_named
from src.dependencies import CompanionDep
from src.models.device import AppMessage, AppMessageAccepted, DeliveryRead, OutboxRead

router = APIRouter(prefix="/device", tags=["device"])
logger = logging.getLogger("supercgm.api.device")


@router.post("/messages", response_model=AppMessageAccepted, status_code=202)
async def receive_message(companion: CompanionDep, body: AppMessage) -> Any:
    requested = await companion.handle_app_message(body.payload)
    return {"requested": [stream.value for stream in requested]}


@router.post("/ready", response_model=DeliveryRead)
async def device_ready(companion: CompanionDep) -> Any:
    """The watch (re)connected: push the configuration and restart polling."""
    outcome = await companion.handle_ready()
    return {
        "ok": outcome.ok,
        "results": [
            {
                "index": r.index,
                "delivered": r.delivered,
                "attempts": r.attempts,
                "error": r.error,
            }
            for r in outcome.results
        ],
    }


@router.get("/outbox", response_model=OutboxRead)
async def drain_outbox(companion: CompanionDep) -> Any:
    """Return and clear the messages waiting for the watch, keyed by name."""
    transport = companion.channel.transport
    if not isinstance(transport, OutboxTransport):
        raise HTTPException(status_code=404, detail="No outbox for this transport")
    messages = transport.drain()
    logger.debug("Drained %d message(s)", len(messages))
    return {"messages": [to_named(message) for message in messages]}
