"""Shared Pydantic base models for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ApiBase(BaseModel):
    """Base model with shared config for all request/response schemas."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
    )
