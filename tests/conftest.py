"""Pytest configuration and fake upstream collaborators."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from quotegate.errors import TransportFailure
from quotegate.gateway import MarketDataGateway
from quotegate.models import Session
from quotegate.providers.base import Request


class FakeTransport:
    """Records every call and replays scripted payloads (or raises scripted errors)."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses = list(responses or [])
        self.calls: list[tuple[Request, Session | None]] = []

    async def get(self, request: Request, session: Session | None = None) -> Any:
        self.calls.append((request, session))
        if not self.responses:
            raise AssertionError(f"Unexpected upstream call: {request.path}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeAcquirer:
    """Counts acquisitions; each one mints crumb-N / cookie-N."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self) -> tuple[str, dict[str, str]]:
        self.calls += 1
        n = self.calls
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"crumb-{n}", {"A3": f"cookie-{n}"}


_END = object()
_DROP = object()


class FakeConnection:
    """Streaming connection fed by the test through push()/drop()/end()."""

    def __init__(self, symbols: list[str], close_delay: float = 0.0):
        self.symbols = symbols
        self.close_delay = close_delay
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, tick: dict[str, Any]) -> None:
        self._queue.put_nowait(tick)

    def drop(self) -> None:
        self._queue.put_nowait(_DROP)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def __aiter__(self):
        return self._ticks()

    async def _ticks(self):
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if item is _DROP:
                raise TransportFailure("connection dropped")
            yield item

    async def close(self) -> None:
        await asyncio.sleep(self.close_delay)
        self.closed = True


class FakeTickSource:
    """
    Hands out FakeConnections.

    ``gate`` holds open() until set, ``preload`` ticks are queued on every new
    connection and ``close_delay`` slows down connection.close().
    """

    def __init__(
        self,
        fail: Exception | None = None,
        gate: asyncio.Event | None = None,
        preload: list[dict[str, Any]] | None = None,
        close_delay: float = 0.0,
    ):
        self.fail = fail
        self.gate = gate
        self.preload = list(preload or [])
        self.close_delay = close_delay
        self.connections: list[FakeConnection] = []

    async def open(self, symbols: list[str]) -> FakeConnection:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        connection = FakeConnection(symbols, close_delay=self.close_delay)
        for tick in self.preload:
            connection.push(tick)
        self.connections.append(connection)
        return connection


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll until predicate() is truthy, yielding to the event loop."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


def chart_payload(symbol: str = "XYZ", n: int = 3, adjclose: bool = True) -> dict[str, Any]:
    """v8 chart response with n bars starting at t=1700000000, one day apart."""
    timestamps = [1700000000 + i * 86400 for i in range(n)]
    indicators: dict[str, Any] = {
        "quote": [{
            "open": [10.0 + i for i in range(n)],
            "high": [11.0 + i for i in range(n)],
            "low": [9.0 + i for i in range(n)],
            "close": [10.5 + i for i in range(n)],
            "volume": [1000 * (i + 1) for i in range(n)],
        }]
    }
    if adjclose:
        indicators["adjclose"] = [{"adjclose": [10.4 + i for i in range(n)]}]
    return {
        "chart": {
            "result": [{
                "meta": {
                    "symbol": symbol,
                    "instrumentType": "equity",
                    "exchangeName": "NMS",
                    "priceHint": 2,
                    "dataGranularity": "1d",
                },
                "timestamp": timestamps,
                "indicators": indicators,
            }],
            "error": None,
        }
    }


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def acquirer() -> FakeAcquirer:
    return FakeAcquirer()


@pytest.fixture
def tick_source() -> FakeTickSource:
    return FakeTickSource()


@pytest.fixture
def gateway(transport, acquirer, tick_source) -> MarketDataGateway:
    return MarketDataGateway(
        transport=transport,
        acquirer=acquirer,
        tick_source=tick_source,
        market_time_url="https://example.test/market-time",
        stream_reconnect_attempts=0,
    )
