"""Shared fixtures and fake collaborators for the companion tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import httpx
import pytest

from src.companion.base import (
    Configuration,
    DeliveryFailure,
    DeviceProfile,
    Location,
    PaletteClass,
    RowType,
)
from src.companion.channel import DeviceTransport, MessageChannel
from src.companion.config_loader import WatchfaceDefaults, load_defaults
from src.companion.message_keys import MessageValue
from src.companion.pipeline import Companion
from src.companion.reconciler import ConfigReconciler
from src.companion.sources import (
    GlucoseSource,
    Locator,
    OpenMeteoProvider,
    WeatherService,
    WttrProvider,
)
from src.companion.storage import KeyValueStore, MemoryStore

# Fixed clock: 2026-02-23T12:00:00Z
NOW_SECONDS = 1771848000

NIGHTSCOUT_URL = "https://cgm.example.org"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingTransport(DeviceTransport):
    """Device transport that records every attempt and fails on demand.

    Args:
        fail: Predicate on (attempt number, message); True rejects the attempt.
    """

    def __init__(
        self, fail: Callable[[int, dict[int, MessageValue]], bool] | None = None
    ) -> None:
        self.attempts: list[dict[int, MessageValue]] = []
        self.delivered: list[dict[int, MessageValue]] = []
        self._fail = fail

    async def send(self, message: dict[int, MessageValue]) -> None:
        self.attempts.append(dict(message))
        if self._fail is not None and self._fail(len(self.attempts), message):
            raise DeliveryFailure("NACK")
        self.delivered.append(dict(message))


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """An httpx client whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class FakeUpstream:
    """Answers glucose and weather requests and records the hosts contacted."""

    def __init__(self) -> None:
        self.glucose = httpx.Response(
            200, json={"bgs": [{"sgv": 131, "datetime": 1771847700000, "direction": "SingleUp"}]}
        )
        self.weather_ok = True
        self.hosts: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hosts.append(request.url.host)
        if request.url.path.endswith("/pebble"):
            return httpx.Response(
                self.glucose.status_code, headers=self.glucose.headers, content=self.glucose.content
            )
        if self.weather_ok and request.url.host == "api.open-meteo.test":
            return httpx.Response(200, json={"current_weather": {"temperature": 21.5}})
        return httpx.Response(500)


def build_companion(
    upstream: FakeUpstream,
    defaults: WatchfaceDefaults,
    profile: DeviceProfile,
    store: KeyValueStore,
    transport: DeviceTransport,
) -> Companion:
    """A Companion wired to fake upstreams, a fixed clock and ``transport``."""
    client = mock_client(upstream)
    weather = WeatherService(
        Locator(store, Location(52.52, 13.405)),
        providers=[
            OpenMeteoProvider("https://api.open-meteo.test/v1/forecast"),
            WttrProvider("https://wttr.test/{latitude},{longitude}"),
        ],
        http_client=client,
        clock=lambda: datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc),
    )
    return Companion(
        reconciler=ConfigReconciler(store, profile, defaults.configuration),
        channel=MessageChannel(transport),
        glucose=GlucoseSource(http_client=client, now=lambda: NOW_SECONDS),
        weather=weather,
        http_client=client,
    )


def make_config(**overrides) -> Configuration:
    """A five-row configuration with weather and glucose rows."""
    data = {
        "rows": [
            {"type": RowType.WEATHER, "color": "#00FFFF"},
            {"type": RowType.TIME, "color": "#FFFFFF"},
            {"type": RowType.GLUCOSE_MONITOR, "color": "#00FF00"},
            {"type": RowType.DATE, "color": "#AAAAAA"},
            {"type": RowType.WEEKDAY, "color": "#AAAAAA"},
        ],
        "bgUrl": NIGHTSCOUT_URL,
    }
    data.update(overrides)
    return Configuration.model_validate(data)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def defaults() -> WatchfaceDefaults:
    """Load the real bundled defaults for tests."""
    return load_defaults()


@pytest.fixture
def color_profile() -> DeviceProfile:
    return DeviceProfile(platform="basalt", palette_class=PaletteClass.COLOR, row_count=5)


@pytest.fixture
def mono_profile() -> DeviceProfile:
    return DeviceProfile(platform="aplite", palette_class=PaletteClass.MONOCHROME, row_count=5)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def config() -> Configuration:
    return make_config()


@pytest.fixture
def time_only_config() -> Configuration:
    return make_config(rows=[{"type": RowType.TIME}] * 5, bgUrl=None)
