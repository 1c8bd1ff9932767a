"""Chunked, retrying delivery of key-value messages to the watch.

The phone-to-watch link carries one small dictionary per message, has a tight
payload ceiling and drops messages on some host platforms.  ``MessageChannel``
therefore sends a sequence of dictionaries strictly one at a time, retries a
rejected dictionary exactly once, and then moves on: a chunk that fails twice
is dropped so that the remaining chunks still reach the watch.

Usage::

    channel = MessageChannel(OutboxTransport(max_payload_bytes=512))
    outcome = await channel.deliver(config_chunks(config))
    outcome.dropped   # indices of chunks that never landed
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from src.companion.base import DeliveryFailure
from src.companion.message_keys import MessageValue, to_keyed

logger = logging.getLogger("supercgm.channel")

# AppMessage dictionary framing
_DICT_HEADER_BYTES = 1
_TUPLE_HEADER_BYTES = 7
_INT_BYTES = 4


def encoded_size(message: Mapping[int, MessageValue]) -> int:
    """Return the encoded size of a message in the watch's dictionary format."""
    size = _DICT_HEADER_BYTES
    for value in message.values():
        size += _TUPLE_HEADER_BYTES
        if isinstance(value, str):
            size += len(value.encode("utf-8")) + 1
        else:
            size += _INT_BYTES
    return size


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class DeviceTransport(ABC):
    """The link to the watch.

    ``send`` returns once the watch acknowledged the message and raises
    ``DeliveryFailure`` when it was rejected.
    """

    @abstractmethod
    async def send(self, message: dict[int, MessageValue]) -> None:
        """Send one keyed message and wait for the acknowledgement."""


class OutboxTransport(DeviceTransport):
    """In-memory outbox drained by the watch bridge over HTTP.

    Messages larger than the watch's inbox are rejected the same way the watch
    would reject them.
    """

    def __init__(self, max_payload_bytes: int = 512) -> None:
        self.max_payload_bytes = max_payload_bytes
        self._outbox: deque[dict[int, MessageValue]] = deque()

    async def send(self, message: dict[int, MessageValue]) -> None:
        size = encoded_size(message)
        if size > self.max_payload_bytes:
            raise DeliveryFailure(
                f"Message of {size} bytes exceeds the {self.max_payload_bytes}-byte inbox"
            )
        self._outbox.append(dict(message))

    def drain(self) -> list[dict[int, MessageValue]]:
        """Return and remove every queued message, oldest first."""
        messages = list(self._outbox)
        self._outbox.clear()
        return messages

    def __len__(self) -> int:
        return len(self._outbox)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


@dataclass
class ChunkResult:
    """Result of delivering one dictionary.

    Attributes:
        index:     Position of the dictionary in the delivered sequence.
        delivered: True if an attempt was acknowledged.
        attempts:  Number of send attempts made (0 if the chunk was invalid).
        error:     Last failure reason, if any.
    """

    index: int
    delivered: bool
    attempts: int
    error: str | None = None


@dataclass
class DeliveryOutcome:
    """Per-chunk results of one ``deliver`` call."""

    results: list[ChunkResult] = field(default_factory=list)

    @property
    def delivered(self) -> list[int]:
        return [r.index for r in self.results if r.delivered]

    @property
    def dropped(self) -> list[int]:
        return [r.index for r in self.results if not r.delivered]

    @property
    def ok(self) -> bool:
        return all(r.delivered for r in self.results)


class MessageChannel:
    """Sequential, retry-once delivery of dictionaries to the watch.

    Only one message is ever in flight.  Concurrent ``deliver`` calls (weather
    and glucose streams firing together) are serialized as whole sequences.
    """

    #: First attempt plus exactly one retry.
    MAX_ATTEMPTS = 2

    def __init__(self, transport: DeviceTransport, ack_timeout: float = 5.0) -> None:
        """Initialize the channel.

        Args:
            transport:   Link to the watch.
            ack_timeout: Seconds to wait for an acknowledgement before the
                         attempt counts as failed.
        """
        self._transport = transport
        self._ack_timeout = ack_timeout
        self._lock = asyncio.Lock()

    @property
    def transport(self) -> DeviceTransport:
        return self._transport

    async def deliver(
        self, dictionaries: Sequence[Mapping[str, MessageValue]]
    ) -> DeliveryOutcome:
        """Send each dictionary as one message, in order.

        Chunk N+1 is never sent before chunk N succeeded or failed twice.
        Failures are recorded in the outcome, never raised.
        """
        chunks = [dict(d) for d in dictionaries]
        outcome = DeliveryOutcome()
        async with self._lock:
            for index, chunk in enumerate(chunks):
                outcome.results.append(await self._deliver_chunk(index, chunk))

        if outcome.dropped:
            logger.warning(
                "Delivery finished with %d of %d chunk(s) dropped: %s",
                len(outcome.dropped),
                len(chunks),
                outcome.dropped,
            )
        else:
            logger.debug("Delivered %d chunk(s)", len(chunks))
        return outcome

    async def _deliver_chunk(
        self, index: int, chunk: dict[str, MessageValue]
    ) -> ChunkResult:
        try:
            message = to_keyed(chunk)
        except KeyError as exc:
            logger.error("Chunk %d has an unknown message key %s; not sent", index, exc)
            return ChunkResult(index=index, delivered=False, attempts=0, error=f"unknown key {exc}")

        error: str | None = None
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                await asyncio.wait_for(
                    self._transport.send(message), timeout=self._ack_timeout
                )
                return ChunkResult(index=index, delivered=True, attempts=attempt)
            except DeliveryFailure as exc:
                error = str(exc) or "rejected"
            except asyncio.TimeoutError:
                error = f"no acknowledgement within {self._ack_timeout}s"
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
            logger.warning(
                "Chunk %d failed (attempt %d/%d): %s",
                index,
                attempt,
                self.MAX_ATTEMPTS,
                error,
            )
        return ChunkResult(
            index=index, delivered=False, attempts=self.MAX_ATTEMPTS, error=error
        )
