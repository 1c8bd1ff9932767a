"""Polling scheduler for the weather and glucose streams.

Each stream has an explicit handle with two states:

    STOPPED:    no timer; the configuration does not enable the stream
    SCHEDULED:  a timer task fetches immediately, then every interval

Streams are enabled by the configuration:
    weather:  a Weather row is displayed
    glucose:  a feed URL is configured AND a glucose row is displayed

Polling intervals (configured minutes, floored):
    weather:  max(5, weatherIntervalMin) minutes
    glucose:  max(1, bgFetchIntervalMin) minutes

Applying a configuration always restarts an enabled stream from zero.  Device
requests trigger an extra fetch without touching the timer.  Fetches run as
their own tasks, so cancelling a timer never aborts a request in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from src.companion.base import GLUCOSE_FLOOR_MINUTES, WEATHER_FLOOR_MINUTES, Configuration

logger = logging.getLogger("supercgm.scheduler")


class Stream(str, Enum):
    WEATHER = "weather"
    GLUCOSE = "glucose"


class StreamState(str, Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"


class Trigger(str, Enum):
    """Why a fetch was started."""

    TIMER = "timer"
    REQUEST = "request"


FetchCallback = Callable[[Stream, Trigger], Awaitable[None]]


@dataclass
class StreamHandle:
    """Scheduling state of one polling stream.

    Attributes:
        stream:           Which stream this handle drives.
        floor_minutes:    Lower bound of the polling interval.
        state:            STOPPED or SCHEDULED.
        interval_seconds: Active polling interval while SCHEDULED.
        task:             The timer task while SCHEDULED.
    """

    stream: Stream
    floor_minutes: int
    state: StreamState = StreamState.STOPPED
    interval_seconds: float | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    def cancel(self) -> None:
        """Cancel the timer and enter STOPPED."""
        if self.task is not None and not self.task.done():
            self.task.cancel()
        self.task = None
        self.interval_seconds = None
        self.state = StreamState.STOPPED


class PollingScheduler:
    """Own the polling timers and start fetches.

    Usage::

        scheduler = PollingScheduler(on_fetch=companion.fetch)
        scheduler.apply(config)              # (re)start enabled streams
        scheduler.request_fetch(Stream.GLUCOSE)
        await scheduler.stop()
    """

    def __init__(
        self,
        on_fetch: FetchCallback,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            on_fetch: Async callback(stream, trigger) performing one fetch and
                      delivering its result.
            sleep:    Awaitable delay between timer fetches.
        """
        self._on_fetch = on_fetch
        self._sleep = sleep
        self._handles: dict[Stream, StreamHandle] = {
            Stream.WEATHER: StreamHandle(Stream.WEATHER, WEATHER_FLOOR_MINUTES),
            Stream.GLUCOSE: StreamHandle(Stream.GLUCOSE, GLUCOSE_FLOOR_MINUTES),
        }
        self._fetches: set[asyncio.Task] = set()

    def handle(self, stream: Stream) -> StreamHandle:
        return self._handles[stream]

    def state(self, stream: Stream) -> StreamState:
        return self._handles[stream].state

    def states(self) -> dict[str, str]:
        return {stream.value: handle.state.value for stream, handle in self._handles.items()}

    def apply(self, config: Configuration) -> None:
        """Enter SCHEDULED or STOPPED for each stream according to ``config``.

        Must be called from within the running event loop.
        """
        self._transition(Stream.WEATHER, config.weather_enabled, config.weather_interval_min)
        self._transition(Stream.GLUCOSE, config.glucose_enabled, config.bg_fetch_interval_min)

    def request_fetch(self, stream: Stream) -> asyncio.Task:
        """Start an out-of-band fetch; the timer state is left untouched."""
        logger.info("Device requested %s fetch", stream.value)
        return self._spawn_fetch(stream, Trigger.REQUEST)

    async def stop(self) -> None:
        """Cancel all timers and outstanding fetches."""
        tasks = [h.task for h in self._handles.values() if h.task is not None]
        for handle in self._handles.values():
            handle.cancel()
        tasks.extend(self._fetches)
        for task in self._fetches:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._fetches.clear()
        logger.info("Polling scheduler stopped")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, stream: Stream, enabled: bool, interval_minutes: int) -> None:
        handle = self._handles[stream]
        was = handle.state
        handle.cancel()

        if not enabled:
            if was is StreamState.SCHEDULED:
                logger.info("Stopped %s polling", stream.value)
            return

        minutes = max(handle.floor_minutes, interval_minutes)
        handle.interval_seconds = minutes * 60
        handle.state = StreamState.SCHEDULED
        handle.task = asyncio.get_running_loop().create_task(
            self._run(handle), name=f"poll-{stream.value}"
        )
        logger.info(
            "%s %s polling every %d min",
            "Restarted" if was is StreamState.SCHEDULED else "Scheduled",
            stream.value,
            minutes,
        )

    async def _run(self, handle: StreamHandle) -> None:
        interval = handle.interval_seconds or handle.floor_minutes * 60
        while True:
            self._spawn_fetch(handle.stream, Trigger.TIMER)
            await self._sleep(interval)

    def _spawn_fetch(self, stream: Stream, trigger: Trigger) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._fetch(stream, trigger), name=f"fetch-{stream.value}-{trigger.value}"
        )
        self._fetches.add(task)
        task.add_done_callback(self._fetches.discard)
        return task

    async def _fetch(self, stream: Stream, trigger: Trigger) -> None:
        try:
            await self._on_fetch(stream, trigger)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s fetch (%s) failed", stream.value, trigger.value)
