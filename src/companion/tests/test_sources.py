"""Tests for the glucose feed, weather providers and geolocation.

Upstream APIs are simulated with ``httpx.MockTransport``.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from src.companion.base import GlucoseStatus, Location, TempUnit
from src.companion.sources import (
    GlucoseSource,
    Locator,
    OpenMeteoProvider,
    WeatherService,
    WttrProvider,
)
from src.companion.sources.location import LAST_LOCATION_KEY, location_from_payload
from src.companion.storage import MemoryStore
from src.companion.tests.conftest import NIGHTSCOUT_URL, NOW_SECONDS, mock_client

OPEN_METEO_URL = "https://api.open-meteo.test/v1/forecast"
WTTR_URL = "https://wttr.test/{latitude},{longitude}"
GEO_URL = "https://geo.test/json/"

BERLIN = Location(52.52, 13.405, source="default")


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Glucose
# ---------------------------------------------------------------------------


class TestGlucoseSource:
    @pytest.mark.asyncio
    async def test_fetches_pebble_endpoint(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(
                200, json={"bgs": [{"sgv": "142", "datetime": 1771847700000, "direction": "Flat"}]}
            )

        source = GlucoseSource(http_client=mock_client(handler), now=lambda: NOW_SECONDS)
        reading = await source.fetch(NIGHTSCOUT_URL + "/")
        assert seen == [f"{NIGHTSCOUT_URL}/pebble"]
        assert reading.status is GlucoseStatus.OK
        assert reading.value == 142
        assert reading.trend_glyph == "→"

    @pytest.mark.asyncio
    async def test_no_url_is_no_data(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        source = GlucoseSource(http_client=mock_client(handler))
        assert (await source.fetch(None)).status is GlucoseStatus.NO_DATA
        assert (await source.fetch("")).status is GlucoseStatus.NO_DATA

    @pytest.mark.asyncio
    async def test_http_error_status_is_no_connection(self) -> None:
        source = GlucoseSource(http_client=mock_client(lambda r: httpx.Response(503, text="down")))
        assert (await source.fetch(NIGHTSCOUT_URL)).status is GlucoseStatus.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_transport_error_is_no_connection(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        source = GlucoseSource(http_client=mock_client(handler))
        assert (await source.fetch(NIGHTSCOUT_URL)).status is GlucoseStatus.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_timeout_is_no_connection(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        source = GlucoseSource(http_client=mock_client(handler))
        assert (await source.fetch(NIGHTSCOUT_URL)).status is GlucoseStatus.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_unreadable_body_is_no_data(self) -> None:
        source = GlucoseSource(http_client=mock_client(lambda r: httpx.Response(200, text="<html>")))
        assert (await source.fetch(NIGHTSCOUT_URL)).status is GlucoseStatus.NO_DATA


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


class TestLocator:
    @pytest.mark.asyncio
    async def test_lookup_is_persisted(self) -> None:
        store = MemoryStore()
        client = mock_client(lambda r: httpx.Response(200, json={"latitude": 48.1, "longitude": 11.6}))
        locator = Locator(store, BERLIN, lookup_url=GEO_URL, http_client=client)
        location = await locator.locate()
        assert (location.latitude, location.longitude, location.source) == (48.1, 11.6, "lookup")
        assert json.loads(store.get(LAST_LOCATION_KEY)) == {"latitude": 48.1, "longitude": 11.6}

    @pytest.mark.asyncio
    async def test_falls_back_to_persisted_location(self) -> None:
        store = MemoryStore({LAST_LOCATION_KEY: json.dumps({"latitude": 40.0, "longitude": -3.7})})
        client = mock_client(lambda r: httpx.Response(500))
        location = await Locator(store, BERLIN, lookup_url=GEO_URL, http_client=client).locate()
        assert (location.latitude, location.longitude, location.source) == (40.0, -3.7, "persisted")

    @pytest.mark.asyncio
    async def test_falls_back_to_default_location(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timeout", request=request)

        location = await Locator(MemoryStore(), BERLIN, lookup_url=GEO_URL, http_client=mock_client(handler)).locate()
        assert location == BERLIN

    @pytest.mark.asyncio
    async def test_unusable_lookup_body_falls_back(self) -> None:
        client = mock_client(lambda r: httpx.Response(200, json={"city": "Nowhere"}))
        location = await Locator(MemoryStore(), BERLIN, lookup_url=GEO_URL, http_client=client).locate()
        assert location.source == "default"

    @pytest.mark.asyncio
    async def test_corrupt_persisted_location_is_ignored(self) -> None:
        store = MemoryStore({LAST_LOCATION_KEY: "{oops"})
        location = await Locator(store, BERLIN).locate()
        assert location.source == "default"

    def test_payload_aliases_and_ranges(self) -> None:
        assert location_from_payload({"lat": "1.5", "lon": 2}).longitude == 2.0
        assert location_from_payload({"lat": 1, "lng": 2}) is not None
        assert location_from_payload({"latitude": 91, "longitude": 0}) is None
        assert location_from_payload({"latitude": True, "longitude": 0}) is None
        assert location_from_payload([1, 2]) is None


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------


def _weather_service(handler, clock: FakeClock | None = None) -> WeatherService:
    client = mock_client(handler)
    locator = Locator(MemoryStore(), BERLIN)
    return WeatherService(
        locator,
        providers=[OpenMeteoProvider(OPEN_METEO_URL), WttrProvider(WTTR_URL)],
        http_client=client,
        clock=clock or FakeClock(datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc)),
    )


class WeatherUpstream:
    """Routes requests to the two providers and counts them."""

    def __init__(self, primary: httpx.Response | Exception, fallback: httpx.Response | Exception) -> None:
        self.primary = primary
        self.fallback = fallback
        self.hosts: list[str] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hosts.append(request.url.host)
        self.requests.append(request)
        answer = self.primary if request.url.host == "api.open-meteo.test" else self.fallback
        if isinstance(answer, Exception):
            raise answer
        return httpx.Response(answer.status_code, headers=answer.headers, content=answer.content)


class TestWeatherService:
    @pytest.mark.asyncio
    async def test_primary_provider(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, json={"current_weather": {"temperature": 11.6}}),
            httpx.Response(500),
        )
        reading = await _weather_service(upstream).fetch(TempUnit.CELSIUS)
        assert reading.temperature == 12
        assert reading.unit is TempUnit.CELSIUS
        assert upstream.hosts == ["api.open-meteo.test"]
        params = upstream.requests[0].url.params
        assert params["latitude"] == "52.52"
        assert params["longitude"] == "13.405"
        assert params["current_weather"] == "true"

    @pytest.mark.asyncio
    async def test_fallback_when_primary_fails(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(502),
            httpx.Response(200, json={"current_condition": [{"temp_C": "20"}]}),
        )
        reading = await _weather_service(upstream).fetch(TempUnit.FAHRENHEIT)
        assert reading.temperature == 68
        assert upstream.hosts == ["api.open-meteo.test", "wttr.test"]
        assert upstream.requests[1].url.path == "/52.52,13.405"
        assert upstream.requests[1].url.params["format"] == "j1"

    @pytest.mark.asyncio
    async def test_unparsable_primary_uses_fallback(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, text="<html>"),
            httpx.Response(200, json={"current_condition": [{"temp_C": "-3"}]}),
        )
        assert (await _weather_service(upstream).fetch(TempUnit.CELSIUS)).temperature == -3

    @pytest.mark.asyncio
    async def test_oversized_primary_temperature_uses_fallback(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(
                200,
                text='{"current_weather": {"temperature": 1' + "0" * 400 + "}}",
                headers={"content-type": "application/json"},
            ),
            httpx.Response(200, json={"current_condition": [{"temp_C": "7"}]}),
        )
        reading = await _weather_service(upstream).fetch(TempUnit.CELSIUS, force=True)
        assert reading.temperature == 7
        assert upstream.hosts == ["api.open-meteo.test", "wttr.test"]

    @pytest.mark.asyncio
    async def test_both_fail_without_cache_is_none(self) -> None:
        upstream = WeatherUpstream(httpx.ConnectError("x"), httpx.ReadTimeout("y"))
        assert await _weather_service(upstream).fetch(TempUnit.CELSIUS) is None

    @pytest.mark.asyncio
    async def test_fresh_cache_reused_without_network(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, json={"current_weather": {"temperature": 5}}), httpx.Response(500)
        )
        clock = FakeClock(datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc))
        service = _weather_service(upstream, clock)
        first = await service.fetch(TempUnit.CELSIUS)
        clock.advance(minutes=9)
        assert await service.fetch(TempUnit.CELSIUS) is first
        assert len(upstream.hosts) == 1

    @pytest.mark.asyncio
    async def test_stale_cache_goes_to_network(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, json={"current_weather": {"temperature": 5}}), httpx.Response(500)
        )
        clock = FakeClock(datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc))
        service = _weather_service(upstream, clock)
        await service.fetch(TempUnit.CELSIUS)
        clock.advance(minutes=10)
        await service.fetch(TempUnit.CELSIUS)
        assert len(upstream.hosts) == 2

    @pytest.mark.asyncio
    async def test_unit_change_bypasses_cache(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, json={"current_weather": {"temperature": 5}}), httpx.Response(500)
        )
        service = _weather_service(upstream)
        await service.fetch(TempUnit.CELSIUS)
        reading = await service.fetch(TempUnit.FAHRENHEIT)
        assert reading.temperature == 41
        assert len(upstream.hosts) == 2

    @pytest.mark.asyncio
    async def test_forced_fetch_always_uses_network(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, json={"current_weather": {"temperature": 5}}), httpx.Response(500)
        )
        service = _weather_service(upstream)
        await service.fetch(TempUnit.CELSIUS)
        await service.fetch(TempUnit.CELSIUS, force=True)
        assert len(upstream.hosts) == 2

    @pytest.mark.asyncio
    async def test_outage_redelivers_fresh_cache(self) -> None:
        upstream = WeatherUpstream(
            httpx.Response(200, json={"current_weather": {"temperature": 5}}), httpx.Response(500)
        )
        clock = FakeClock(datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc))
        service = _weather_service(upstream, clock)
        first = await service.fetch(TempUnit.CELSIUS)

        upstream.primary = httpx.Response(500)
        clock.advance(minutes=5)
        assert await service.fetch(TempUnit.CELSIUS, force=True) is first

        clock.advance(minutes=6)
        assert await service.fetch(TempUnit.CELSIUS, force=True) is None
