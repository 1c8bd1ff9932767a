"""Glucose feed client (Nightscout ``/pebble`` endpoint).

Endpoint used:
    GET {base_url}/pebble: latest reading(s); shape varies by server version

No authentication is sent.  Transport failures and non-2xx answers map to
``NO_CONNECTION``; bodies the parser cannot read map to ``NO_DATA``.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from src.companion.base import GlucoseReading
from src.companion.readings import parse_glucose

logger = logging.getLogger("supercgm.sources.glucose")


class GlucoseSource:
    """Fetch and normalize the latest glucose reading."""

    FEED_PATH = "pebble"

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        now: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the source.

        Args:
            http_client: Optional shared httpx client (injected in tests).
            timeout:     Request timeout in seconds.
            now:         Clock used for readings without a timestamp.
        """
        self._http_client = http_client
        self._timeout = timeout
        self._now = now

    @classmethod
    def feed_url(cls, base_url: str) -> str:
        return f"{base_url.strip().rstrip('/')}/{cls.FEED_PATH}"

    async def fetch(self, base_url: str | None) -> GlucoseReading:
        """Fetch the newest reading from the feed at ``base_url``.

        Never raises; every failure is expressed as the reading's status.
        """
        if not base_url:
            logger.info("No glucose feed configured")
            return GlucoseReading.no_data()

        url = self.feed_url(base_url)
        try:
            response = await self._get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Glucose feed %s unreachable: %s", url, exc)
            return GlucoseReading.no_connection()

        reading = parse_glucose(response.content, response.status_code, now=self._now)
        logger.info(
            "Glucose fetch from %s → status=%s value=%s",
            url,
            reading.status.name,
            reading.value,
        )
        return reading

    async def _get(self, url: str) -> httpx.Response:
        if self._http_client:
            return await self._http_client.get(url, timeout=self._timeout)
        async with httpx.AsyncClient() as client:
            return await client.get(url, timeout=self._timeout)
