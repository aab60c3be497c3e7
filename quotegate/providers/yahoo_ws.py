"""Yahoo Finance streamer (websocket) tick source."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

import websockets
from websockets.asyncio.client import ClientConnection

from ..errors import TransportFailure
from .pricing import FrameDecodeError, decode_frame


logger = logging.getLogger(__name__)


class YahooTickerConnection:
    """One websocket subscribed to a fixed symbol set."""

    def __init__(self, ws: ClientConnection, symbols: list[str]):
        self._ws = ws
        self.symbols = list(symbols)

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._ticks()

    async def _ticks(self) -> AsyncIterator[dict[str, Any]]:
        """
        Yield decoded pricing ticks in arrival order.

        Undecodable frames and heartbeats are skipped. Ends when the upstream
        closes cleanly; raises TransportFailure when the connection drops.
        """
        try:
            async for message in self._ws:
                try:
                    tick = decode_frame(message)
                except FrameDecodeError as e:
                    logger.warning(f"Skipping undecodable streamer frame: {e}")
                    continue

                if tick.get("quoteType") == "HEARTBEAT" or not tick.get("id"):
                    logger.debug("Streamer heartbeat received")
                    continue
                yield tick

        except websockets.exceptions.ConnectionClosedError as e:
            raise TransportFailure(f"Streamer connection dropped: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


class YahooTickerSource:
    """Opens one dedicated streamer websocket per call to ``open``."""

    def __init__(
        self,
        url: str = "wss://streamer.finance.yahoo.com/?version=2",
        user_agent: str | None = None,
        open_timeout: float = 10.0,
    ):
        self.url = url
        self.user_agent = user_agent
        self.open_timeout = open_timeout

    async def open(self, symbols: list[str]) -> YahooTickerConnection:
        kwargs: dict[str, Any] = {}
        if self.user_agent:
            kwargs["user_agent_header"] = self.user_agent

        try:
            ws = await websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                close_timeout=10,
                ping_interval=20,
                ping_timeout=20,
                **kwargs,
            )
        except (websockets.exceptions.WebSocketException, asyncio.TimeoutError, OSError) as e:
            raise TransportFailure(f"Could not connect to streamer {self.url}: {e!r}") from e

        try:
            await ws.send(json.dumps({"subscribe": list(symbols)}))
        except websockets.exceptions.WebSocketException as e:
            await ws.close()
            raise TransportFailure(f"Streamer rejected subscription for {symbols}: {e!r}") from e

        logger.info(f"Connected to streamer. Subscribed to {len(symbols)} symbol(s).")
        return YahooTickerConnection(ws, symbols)
