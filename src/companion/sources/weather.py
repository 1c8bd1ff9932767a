"""Current temperature with a two-tier provider fallback and a short-lived cache.

Providers:
    primary:  Open-Meteo: GET {url}?latitude=..&longitude=..&current_weather=true
    fallback: wttr.in:    GET {url formatted with latitude/longitude}?format=j1

A reading younger than the freshness window is reused for device requests
without touching the network.  Timer-driven fetches always go to the network;
if both providers fail, a cached reading that is still fresh is re-delivered so
the watch does not drop to "no data" on a transient outage.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable

import httpx

from src.companion.base import Location, TempUnit, WeatherReading, utc_now
from src.companion.readings import parse_weather
from src.companion.sources.location import Locator

logger = logging.getLogger("supercgm.sources.weather")

WEATHER_FRESHNESS = timedelta(minutes=10)


class WeatherProvider(ABC):
    """One upstream weather API."""

    #: Name used in logs.
    NAME: str = "unknown"

    def __init__(self, url: str) -> None:
        self.url = url

    @abstractmethod
    def request(self, location: Location) -> tuple[str, dict[str, str]]:
        """Return the URL and query parameters for ``location``."""


class OpenMeteoProvider(WeatherProvider):
    NAME = "open-meteo"

    def request(self, location: Location) -> tuple[str, dict[str, str]]:
        return self.url, {
            "latitude": str(location.latitude),
            "longitude": str(location.longitude),
            "current_weather": "true",
        }


class WttrProvider(WeatherProvider):
    NAME = "wttr"

    def request(self, location: Location) -> tuple[str, dict[str, str]]:
        url = self.url.format(latitude=location.latitude, longitude=location.longitude)
        return url, {"format": "j1"}


class WeatherService:
    """Fetch the current temperature for the phone's location."""

    def __init__(
        self,
        locator: Locator,
        providers: list[WeatherProvider],
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
        freshness: timedelta = WEATHER_FRESHNESS,
    ) -> None:
        """Initialize the service.

        Args:
            locator:     Resolves the coordinates to query.
            providers:   Providers in the order they are tried.
            http_client: Optional shared httpx client.
            timeout:     Per-request timeout in seconds.
            clock:       Returns the current UTC time.
            freshness:   Maximum age of a reusable cached reading.
        """
        self._locator = locator
        self._providers = providers
        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock
        self._freshness = freshness
        self._cached: WeatherReading | None = None

    @property
    def cached(self) -> WeatherReading | None:
        return self._cached

    async def fetch(self, unit: TempUnit, force: bool = False) -> WeatherReading | None:
        """Return the current temperature in ``unit``.

        Args:
            unit:  Temperature unit to report.
            force: Skip the fresh-cache shortcut (timer-driven fetches).

        Returns:
            A WeatherReading, or None if every provider failed and no fresh
            reading is cached.
        """
        unit = TempUnit(unit)
        now = self._clock()
        fresh = self._fresh_cached(unit, now)
        if fresh is not None and not force:
            logger.debug("Reusing weather reading from %s", fresh.fetched_at.isoformat())
            return fresh

        location = await self._locator.locate()
        for provider in self._providers:
            temperature = await self._fetch_provider(provider, location, unit)
            if temperature is not None:
                reading = WeatherReading(temperature=temperature, unit=unit, fetched_at=self._clock())
                self._cached = reading
                logger.info("Weather from %s: %d°%s", provider.NAME, temperature, unit.value)
                return reading

        if fresh is not None:
            logger.warning("All weather providers failed; re-delivering cached reading")
            return fresh
        logger.warning("All weather providers failed and no fresh reading is cached")
        return None

    def _fresh_cached(self, unit: TempUnit, now: datetime) -> WeatherReading | None:
        cached = self._cached
        if cached is None or cached.unit is not unit:
            return None
        return cached if cached.is_fresh(now, self._freshness) else None

    async def _fetch_provider(
        self, provider: WeatherProvider, location: Location, unit: TempUnit
    ) -> int | None:
        url, params = provider.request(location)
        try:
            if self._http_client:
                response = await self._http_client.get(url, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self._timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Weather provider %s unreachable: %s", provider.NAME, exc)
            return None

        if not response.is_success:
            logger.warning("Weather provider %s answered HTTP %s", provider.NAME, response.status_code)
            return None

        temperature = parse_weather(response.content, unit)
        if temperature is None:
            logger.warning("Weather provider %s returned an unreadable body", provider.NAME)
        return temperature
