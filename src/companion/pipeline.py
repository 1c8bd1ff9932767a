"""Wire the reconciler, scheduler, data sources and message channel together.

Event flow::

    ready            → load configuration → push 3 config chunks → schedule
    webview closed   → reconciler.handle_change → push config → reschedule
    app message      → REQUEST_WEATHER / REQUEST_BG → out-of-band fetch
    timer / request  → source.fetch → reading.to_message → channel.deliver
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import httpx

from src.companion.base import Configuration, Location
from src.companion.channel import DeliveryOutcome, DeviceTransport, MessageChannel, OutboxTransport
from src.companion.config_loader import get_defaults
from src.companion.message_keys import config_chunks, to_named
from src.companion.reconciler import ConfigReconciler
from src.companion.scheduler import PollingScheduler, Stream, Trigger
from src.companion.sources import (
    GlucoseSource,
    Locator,
    OpenMeteoProvider,
    WeatherService,
    WttrProvider,
)
from src.companion.storage import JsonFileStore
from src.config import Settings

logger = logging.getLogger("supercgm.pipeline")

_REQUEST_FLAGS: dict[str, Stream] = {
    "REQUEST_WEATHER": Stream.WEATHER,
    "REQUEST_BG": Stream.GLUCOSE,
}


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in {"", "0", "false", "no"}
    return bool(value)


class Companion:
    """The phone-side companion of the watch-face."""

    def __init__(
        self,
        reconciler: ConfigReconciler,
        channel: MessageChannel,
        glucose: GlucoseSource,
        weather: WeatherService,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the companion.

        Args:
            reconciler:  Owner of the configuration.
            channel:     Delivery channel to the watch.
            glucose:     Glucose feed source.
            weather:     Weather service.
            http_client: Shared client closed by ``stop()``, if owned.
        """
        self.reconciler = reconciler
        self.channel = channel
        self.glucose = glucose
        self.weather = weather
        self.scheduler = PollingScheduler(on_fetch=self.fetch)
        self._http_client = http_client
        reconciler.add_listener(self._on_configuration_applied)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: DeviceTransport | None = None,
    ) -> Companion:
        """Build the production object graph from settings."""
        defaults = get_defaults()
        profile = defaults.profile_for(
            settings.device_platform,
            monochrome=settings.device_monochrome,
            row_count=settings.device_row_count,
            forced_color=settings.device_forced_color,
        )
        store = JsonFileStore(Path(settings.store_path))
        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)

        locator = Locator(
            store,
            default=Location(settings.default_latitude, settings.default_longitude),
            lookup_url=settings.geolocation_url or None,
            http_client=http_client,
            timeout=settings.http_timeout_seconds,
        )
        weather = WeatherService(
            locator,
            providers=[
                OpenMeteoProvider(settings.weather_primary_url),
                WttrProvider(settings.weather_fallback_url),
            ],
            http_client=http_client,
            timeout=settings.http_timeout_seconds,
        )
        glucose = GlucoseSource(http_client=http_client, timeout=settings.http_timeout_seconds)
        channel = MessageChannel(
            transport or OutboxTransport(max_payload_bytes=settings.max_message_bytes),
            ack_timeout=settings.message_ack_timeout_seconds,
        )
        reconciler = ConfigReconciler(store, profile, defaults.configuration)
        logger.info(
            "Companion for %s (%s, %d rows)",
            profile.platform,
            profile.palette_class.value,
            profile.row_count,
        )
        return cls(reconciler, channel, glucose, weather, http_client=http_client)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore the configuration and run the ready pipeline."""
        self.reconciler.load()
        await self.handle_ready()

    async def handle_ready(self) -> DeliveryOutcome:
        """Push the configuration and (re)start polling, e.g. after the watch connects."""
        config = self.reconciler.snapshot
        outcome = await self.push_configuration(config)
        self.scheduler.apply(config)
        return outcome

    async def handle_webview_closed(self, response: str | None) -> Configuration | None:
        """Apply the payload returned by the configuration page."""
        return await self.reconciler.handle_change(response)

    async def handle_app_message(self, payload: Mapping[Any, Any]) -> list[Stream]:
        """React to a device-originated message; returns the streams fetched."""
        message = to_named(payload)
        requested = [
            stream
            for flag, stream in _REQUEST_FLAGS.items()
            if _truthy(message.get(flag))
        ]
        for stream in requested:
            self.scheduler.request_fetch(stream)
        return requested

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self._http_client is not None:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def push_configuration(self, config: Configuration | None = None) -> DeliveryOutcome:
        """Send the configuration to the watch as three chunks."""
        snapshot = config or self.reconciler.snapshot
        return await self.channel.deliver(config_chunks(snapshot))

    async def fetch(self, stream: Stream, trigger: Trigger) -> None:
        """Fetch one stream and deliver the result to the watch."""
        config = self.reconciler.snapshot
        if stream is Stream.WEATHER:
            reading = await self.weather.fetch(config.temp_unit, force=trigger is Trigger.TIMER)
            if reading is None:
                return
            await self.channel.deliver([reading.to_message()])
        else:
            glucose = await self.glucose.fetch(config.bg_url)
            await self.channel.deliver([glucose.to_message(config.bg_unit)])

    async def _on_configuration_applied(self, config: Configuration) -> None:
        await self.push_configuration(config)
        self.scheduler.apply(config)
