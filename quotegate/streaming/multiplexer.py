"""Per-channel upstream streaming connections fanned out through the event bus."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from ..errors import TransportFailure, ValidationFailure
from ..normalizer import normalize_tick
from ..providers.base import TickConnection, TickSource
from .event_bus import EventBus


logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], Awaitable[None]]


@dataclass
class StreamChannel:
    """One caller's subscription. Owns its connection and reader task."""
    channel_id: str
    symbols: tuple[str, ...]
    connection: TickConnection | None = None
    task: asyncio.Task | None = None


def normalize_symbols(symbols: Iterable[str]) -> tuple[str, ...]:
    """Uppercase, strip, drop blanks and duplicates (first occurrence wins)."""
    seen: dict[str, None] = {}
    for symbol in symbols:
        cleaned = symbol.strip().upper()
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


class StreamingMultiplexer:
    """
    Opens one upstream connection per subscribe call and republishes its
    ticks on the event bus under the caller's channel id.

    Channels never share connections, even for overlapping symbol sets, so
    tearing one down cannot silence another. Ticks are published as they
    arrive; slow consumers are the bus subscriber's concern.
    """

    def __init__(
        self,
        source: TickSource,
        bus: EventBus,
        reconnect_attempts: int = 5,
        max_retry_delay: float = 60.0,
    ):
        """
        Args:
            source: Opens dedicated upstream connections
            bus: Event bus ticks are published to (topic = channel id)
            reconnect_attempts: Consecutive failed reconnects before a channel gives up
            max_retry_delay: Upper bound for the reconnect backoff in seconds
        """
        self.source = source
        self.bus = bus
        self.reconnect_attempts = reconnect_attempts
        self.max_retry_delay = max_retry_delay
        self._channels: dict[str, StreamChannel] = {}

    def channels(self) -> list[str]:
        return list(self._channels)

    def get_channel(self, channel_id: str) -> StreamChannel | None:
        return self._channels.get(channel_id)

    async def subscribe(self, symbols: Iterable[str], channel_id: str) -> Unsubscribe:
        """Open a dedicated channel. Connection errors raise from here."""
        wanted = normalize_symbols(symbols)
        if not wanted:
            raise ValidationFailure("At least one symbol is required to subscribe")
        if not channel_id:
            raise ValidationFailure("A channel id is required to subscribe")
        if channel_id in self._channels:
            raise ValidationFailure(f"Channel '{channel_id}' is already active")

        # Reserve the id before suspending on the connect
        channel = StreamChannel(channel_id=channel_id, symbols=wanted)
        self._channels[channel_id] = channel
        try:
            connection = await self.source.open(list(wanted))
        except BaseException:
            if self._channels.get(channel_id) is channel:
                del self._channels[channel_id]
            raise

        if self._channels.get(channel_id) is not channel:
            # Unsubscribed or shut down while connecting
            await self._release_connection(channel_id, connection)
            raise TransportFailure(f"Channel '{channel_id}' was closed while connecting")
        channel.connection = connection

        channel.task = asyncio.create_task(self._pump(channel), name=f"stream-{channel_id}")
        logger.info(f"Starting stream {channel_id} for {list(wanted)}")

        async def unsubscribe() -> None:
            await self._close_channel(channel)

        return unsubscribe

    async def unsubscribe(self, channel_id: str) -> None:
        """Tear down a channel by id. No-op for unknown ids."""
        channel = self._channels.get(channel_id)
        if channel is not None:
            await self._close_channel(channel)

    async def close(self) -> None:
        """Tear down every channel (shutdown)."""
        channels = list(self._channels.values())
        if channels:
            await asyncio.gather(*(self._close_channel(c) for c in channels), return_exceptions=True)
        logger.info(f"Streaming multiplexer closed ({len(channels)} channel(s)).")

    # --- Internal ---

    async def _close_channel(self, channel: StreamChannel) -> None:
        if self._channels.get(channel.channel_id) is channel:
            del self._channels[channel.channel_id]

        task = channel.task
        if task is not None and not task.done():
            task.cancel()
            # Waits without cancelling the reader again if the caller is cancelled
            await asyncio.wait({task})
        elif channel.connection is not None:
            await self._release(channel)
        logger.info(f"Closing stream {channel.channel_id}")

    async def _release(self, channel: StreamChannel) -> None:
        connection, channel.connection = channel.connection, None
        if connection is not None:
            await self._release_connection(channel.channel_id, connection)

    async def _release_connection(self, channel_id: str, connection: TickConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning(f"Error closing upstream connection for {channel_id}: {e!r}")

    async def _pump(self, channel: StreamChannel) -> None:
        """Reader loop: one per channel. Releases the connection on every exit path."""
        try:
            while channel.connection is not None:
                try:
                    async for raw in channel.connection:
                        try:
                            tick = normalize_tick(raw)
                        except TransportFailure as e:
                            logger.warning(f"Dropping tick on {channel.channel_id}: {e}")
                            continue
                        self.bus.publish(channel.channel_id, tick)
                    logger.info(f"Upstream ended stream {channel.channel_id}")
                except TransportFailure as e:
                    logger.warning(f"Stream {channel.channel_id} dropped: {e}")
                finally:
                    await self._release(channel)

                await self._reconnect(channel)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Fatal error in stream {channel.channel_id}: {e}", exc_info=True)
        finally:
            await self._release(channel)
            if self._channels.get(channel.channel_id) is channel:
                del self._channels[channel.channel_id]

    async def _reconnect(self, channel: StreamChannel) -> None:
        """Re-open the channel's connection with exponential backoff and jitter.

        Leaves ``channel.connection`` as None after too many failures.
        """
        for attempt in range(1, self.reconnect_attempts + 1):
            delay = min(2 ** attempt + random.uniform(0, 1), self.max_retry_delay)
            logger.info(f"Reconnecting stream {channel.channel_id} in {delay:.1f}s (attempt {attempt})...")
            await asyncio.sleep(delay)
            try:
                channel.connection = await self.source.open(list(channel.symbols))
                return
            except TransportFailure as e:
                logger.error(f"Reconnect of {channel.channel_id} failed (attempt {attempt}): {e}")

        logger.error(
            f"Stream {channel.channel_id} unavailable after {self.reconnect_attempts} "
            "reconnect attempts. Closing channel."
        )
