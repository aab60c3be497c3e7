"""
Query surface: JSON routes and the websocket stream route.

Each route calls one gateway operation and serializes the result. Gateway
errors are mapped to HTTP statuses by the handler registered in main.py.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import (
    AuthAcquisitionError,
    AuthenticationFailure,
    GatewayError,
    TransportFailure,
    ValidationFailure,
)
from ..gateway import MarketDataGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["market-data"])

# Gateway instance (set by main.py lifespan)
_gateway: MarketDataGateway | None = None

ERROR_STATUS: dict[type[GatewayError], int] = {
    ValidationFailure: 422,
    AuthAcquisitionError: 503,
    AuthenticationFailure: 502,
    TransportFailure: 502,
}


def set_gateway(gateway: MarketDataGateway | None):
    """Set the gateway instance."""
    global _gateway
    _gateway = gateway


def get_gateway() -> MarketDataGateway:
    """Get the gateway instance."""
    if _gateway is None:
        raise RuntimeError("Gateway not initialized")
    return _gateway


def error_status(exc: GatewayError) -> int:
    for error_cls, status in ERROR_STATUS.items():
        if isinstance(exc, error_cls):
            return status
    return 500


def error_body(exc: GatewayError) -> dict[str, Any]:
    body: dict[str, Any] = {"error": exc.kind, "detail": str(exc)}
    status = getattr(exc, "status", None)
    if status is not None:
        body["upstream_status"] = status
    return body


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.error(f"{request.url.path} failed: {exc.kind}: {exc}")
    return JSONResponse(status_code=status, content=error_body(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)


def _split_symbols(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


@router.get("/quotes")
async def get_quotes(
    symbols: str = Query(..., description="Comma-separated symbols, e.g. AAPL,MSFT"),
    gateway: MarketDataGateway = Depends(get_gateway),
) -> list[dict[str, Any]]:
    quotes = await gateway.get_quotes(_split_symbols(symbols))
    return [q.to_dict() for q in quotes]


@router.get("/profile/{symbol}")
async def get_profile(symbol: str, gateway: MarketDataGateway = Depends(get_gateway)) -> dict[str, Any]:
    profile = await gateway.get_profile(symbol)
    return profile.to_dict()


@router.get("/series/{symbol}")
async def get_series(
    symbol: str,
    interval: str = Query("ONE_DAY", description="ONE_MINUTE .. THREE_MONTHS"),
    gateway: MarketDataGateway = Depends(get_gateway),
) -> dict[str, Any]:
    series = await gateway.get_historical_series(symbol, interval)
    return series.to_dict()


@router.get("/recommendations/{symbol}")
async def get_recommendations(symbol: str, gateway: MarketDataGateway = Depends(get_gateway)) -> list[dict[str, Any]]:
    related = await gateway.get_recommendations(symbol)
    return [r.to_dict() for r in related]


@router.get("/lookup")
async def lookup(
    query: str = Query("", description="Search term"),
    asset_type: str = Query("all", alias="type", description="Asset category (equity, etf, ...)"),
    gateway: MarketDataGateway = Depends(get_gateway),
) -> dict[str, Any]:
    result = await gateway.lookup(query, asset_type)
    return result.to_dict()


@router.get("/market-status")
async def get_market_status(gateway: MarketDataGateway = Depends(get_gateway)) -> dict[str, Any]:
    status = await gateway.get_market_status()
    return status.to_dict()


@router.websocket("/stream")
async def stream_quotes(
    websocket: WebSocket,
    symbols: str = Query(..., description="Comma-separated symbols"),
    gateway: MarketDataGateway = Depends(get_gateway),
) -> None:
    """
    Relay live ticks for ``symbols`` over a private channel.

    The channel is torn down as soon as the client disconnects, which never
    affects other clients' channels. If the channel cannot be opened the
    client gets one error frame and a 1011 close.
    """
    await websocket.accept()
    wanted = _split_symbols(symbols)
    relay = asyncio.create_task(_relay(websocket, gateway.stream(wanted)))
    disconnect = asyncio.create_task(_until_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({relay, disconnect}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        relay.cancel()
        disconnect.cancel()
        await asyncio.gather(relay, disconnect, return_exceptions=True)

    if relay not in done or relay.cancelled():
        logger.info(f"Stream client disconnected ({wanted})")
        return

    error = relay.exception()
    if isinstance(error, GatewayError):
        logger.warning(f"Stream for {wanted} could not start: {error}")
        await websocket.send_json(error_body(error))
        await websocket.close(code=1011)
    elif error is not None:
        logger.error(f"Stream relay for {wanted} failed: {error!r}")


async def _relay(websocket: WebSocket, ticks: AsyncIterator[dict[str, Any]]) -> None:
    async for tick in ticks:
        await websocket.send_json(tick)


async def _until_disconnect(websocket: WebSocket) -> None:
    # Clients do not send; receiving only detects the disconnect
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


@router.get("/streams")
async def get_streams(gateway: MarketDataGateway = Depends(get_gateway)) -> dict[str, Any]:
    """Active channel ids and their symbols."""
    channels = {}
    for channel_id in gateway.multiplexer.channels():
        channel = gateway.multiplexer.get_channel(channel_id)
        if channel is not None:
            channels[channel_id] = list(channel.symbols)
    return {"channels": channels}


def health_payload(gateway: MarketDataGateway | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"ok": gateway is not None, "version": __version__}
    if gateway is not None:
        session = gateway.store.current
        payload["session"] = {
            "active": session is not None,
            "acquired_at": session.acquired_at if session else None,
            "acquisitions": gateway.store.acquisitions,
            "invalidations": gateway.store.invalidations,
        }
        payload["streams"] = len(gateway.multiplexer.channels())
    return payload
