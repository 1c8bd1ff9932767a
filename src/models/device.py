"""Request/response schemas for the configuration and device endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from src.models.base import ApiBase


class ChangeStatus(str, Enum):
    applied = "applied"
    cancelled = "cancelled"


class WebviewClosed(ApiBase):
    """Payload returned by the configuration page when it closes.

    ``response`` is the URL-encoded JSON configuration, empty on cancel.
    """

    response: str | None = None


class ConfigurationChange(ApiBase):
    status: ChangeStatus
    configuration: dict[str, Any]


class ConfigurationUrl(ApiBase):
    url: str


class AppMessage(ApiBase):
    """A device-originated message keyed by numeric id or key name."""

    payload: dict[str, Any] = Field(default_factory=dict)


class AppMessageAccepted(ApiBase):
    requested: list[str]


class ChunkResultRead(ApiBase):
    index: int
    delivered: bool
    attempts: int
    error: str | None = None


class DeliveryRead(ApiBase):
    ok: bool
    results: list[ChunkResultRead]


class OutboxRead(ApiBase):
    messages: list[dict[str, Any]]
