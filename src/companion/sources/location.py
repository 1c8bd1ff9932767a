"""Resolve the coordinates used for weather lookups.

Lookup order:
    1. IP geolocation provider (``lookup_url``, JSON with latitude/longitude)
    2. Last known location persisted in the store
    3. Configured default location

Every successful lookup is persisted so the next outage falls back to it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.companion.base import Location
from src.companion.storage import KeyValueStore

logger = logging.getLogger("supercgm.sources.location")

LAST_LOCATION_KEY = "last_location"


def _coordinate(payload: dict, *names: str) -> float | None:
    for name in names:
        value = payload.get(name)
        if isinstance(value, bool) or value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def location_from_payload(payload: Any, source: str = "lookup") -> Location | None:
    """Read coordinates from a geolocation response or a persisted record.

    Accepts ``latitude``/``longitude`` as well as ``lat``/``lon``.
    """
    if not isinstance(payload, dict):
        return None
    latitude = _coordinate(payload, "latitude", "lat")
    longitude = _coordinate(payload, "longitude", "lon", "lng")
    if latitude is None or longitude is None:
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        return None
    return Location(latitude=latitude, longitude=longitude, source=source)


class Locator:
    """Geolocation with a persisted and a fixed fallback."""

    def __init__(
        self,
        store: KeyValueStore,
        default: Location,
        lookup_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the locator.

        Args:
            store:       Store holding the last known location.
            default:     Location used when everything else fails.
            lookup_url:  Geolocation endpoint; None skips the lookup.
            http_client: Optional shared httpx client.
            timeout:     Lookup timeout in seconds.
        """
        self._store = store
        self._default = Location(default.latitude, default.longitude, source="default")
        self._lookup_url = lookup_url
        self._http_client = http_client
        self._timeout = timeout

    async def locate(self) -> Location:
        location = await self._lookup()
        if location is not None:
            self._store.set(
                LAST_LOCATION_KEY,
                json.dumps({"latitude": location.latitude, "longitude": location.longitude}),
            )
            return location

        persisted = self._persisted()
        if persisted is not None:
            logger.info("Using last known location %.3f,%.3f", persisted.latitude, persisted.longitude)
            return persisted

        logger.info("Using default location %.3f,%.3f", self._default.latitude, self._default.longitude)
        return self._default

    async def _lookup(self) -> Location | None:
        if not self._lookup_url:
            return None
        try:
            if self._http_client:
                response = await self._http_client.get(self._lookup_url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self._lookup_url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning("Geolocation lookup failed: %s", exc)
            return None

        location = location_from_payload(payload)
        if location is None:
            logger.warning("Geolocation response carried no usable coordinates")
        return location

    def _persisted(self) -> Location | None:
        raw = self._store.get(LAST_LOCATION_KEY)
        if not raw:
            return None
        try:
            return location_from_payload(json.loads(raw), source="persisted")
        except ValueError as exc:
            logger.warning("Ignoring corrupt persisted location: %s", exc)
            return None
