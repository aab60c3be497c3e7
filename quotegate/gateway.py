"""Core gateway operations exposed to the query surface."""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Iterable

from .config import Settings
from .errors import ValidationFailure
from .models import HistoricalSeries, Instrument, LookupResult, MarketStatus, Profile, Session
from .normalizer import (
    LOOKUP_CATEGORIES,
    empty_totals,
    normalize_lookup,
    normalize_lookup_totals,
    normalize_market_status,
    normalize_profile,
    normalize_quotes,
    normalize_recommendations,
    normalize_series,
)
from .providers.base import Request, SessionAcquirer, TickSource, Transport
from .session.executor import RequestExecutor
from .session.store import SessionStore
from .streaming.event_bus import EventBus
from .streaming.multiplexer import StreamingMultiplexer, Unsubscribe, normalize_symbols
from .utils.intervals import Interval, chart_range


logger = logging.getLogger(__name__)

PROFILE_MODULES = "assetProfile,price,summaryDetail,recommendationTrend"


def new_channel_id() -> str:
    return f"ticker_{uuid.uuid4()}"


class MarketDataGateway:
    """
    Wires the session store, executor, transport, normalizer and streaming
    multiplexer together.

    Authenticated operations (quotes, profile) go through the executor.
    Everything else calls the transport directly.
    """

    def __init__(
        self,
        transport: Transport,
        acquirer: SessionAcquirer,
        tick_source: TickSource,
        bus: EventBus | None = None,
        market_time_url: str = "https://finance.yahoo.com/_finance_doubledown/api/resource/finance.market-time",
        lookup_max_results: int = 500,
        max_auth_retries: int | None = None,
        auth_retry_backoff: float = 0.0,
        stream_reconnect_attempts: int = 5,
        stream_max_retry_delay: float = 60.0,
    ):
        self.transport = transport
        self.store = SessionStore(acquirer)
        self.executor = RequestExecutor(
            self.store,
            transport,
            max_auth_retries=max_auth_retries,
            retry_backoff=auth_retry_backoff,
        )
        self.bus = bus or EventBus()
        self.multiplexer = StreamingMultiplexer(
            tick_source,
            self.bus,
            reconnect_attempts=stream_reconnect_attempts,
            max_retry_delay=stream_max_retry_delay,
        )
        self.market_time_url = market_time_url
        self.lookup_max_results = lookup_max_results

    @classmethod
    def from_settings(cls, settings: Settings) -> "MarketDataGateway":
        """Build a gateway backed by the Yahoo Finance providers."""
        from .providers.yahoo_rest import YahooTransport
        from .providers.yahoo_session import CrumbAcquirer
        from .providers.yahoo_ws import YahooTickerSource

        return cls(
            transport=YahooTransport(
                base_url=settings.base_url,
                user_agent=settings.user_agent,
                timeout=settings.request_timeout,
            ),
            acquirer=CrumbAcquirer(
                cookie_url=settings.cookie_url,
                crumb_url=settings.crumb_url,
                user_agent=settings.user_agent,
                timeout=settings.request_timeout,
            ),
            tick_source=YahooTickerSource(url=settings.stream_url, user_agent=settings.user_agent),
            market_time_url=settings.market_time_url,
            lookup_max_results=settings.lookup_max_results,
            max_auth_retries=settings.max_auth_retries,
            auth_retry_backoff=settings.auth_retry_backoff,
            stream_reconnect_attempts=settings.stream_reconnect_attempts,
            stream_max_retry_delay=settings.stream_max_retry_delay,
        )

    async def close(self) -> None:
        await self.multiplexer.close()
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    # --- Authenticated ---

    async def get_quotes(self, symbols: Iterable[str]) -> list[Instrument]:
        wanted = normalize_symbols(symbols)
        if not wanted:
            raise ValidationFailure("At least one symbol is required")

        def build(session: Session) -> Request:
            return Request(
                "v7/finance/quote",
                params={"symbols": ",".join(wanted), "crumb": session.token},
            )

        payload = await self.executor.execute(build)
        return normalize_quotes(payload)

    async def get_profile(self, symbol: str) -> Profile:
        symbol = _require_symbol(symbol)

        def build(session: Session) -> Request:
            return Request(
                f"v10/finance/quoteSummary/{symbol}",
                params={"modules": PROFILE_MODULES, "crumb": session.token},
            )

        payload = await self.executor.execute(build)
        return normalize_profile(payload)

    # --- Unauthenticated ---

    async def get_historical_series(self, symbol: str, interval: Interval | str) -> HistoricalSeries:
        symbol = _require_symbol(symbol)
        params = chart_range(interval)  # Validates before any upstream call
        payload = await self.transport.get(
            Request(
                f"v8/finance/chart/{symbol}",
                params={"interval": params.interval, "range": params.range},
            )
        )
        return normalize_series(payload)

    async def get_recommendations(self, symbol: str) -> list[Instrument]:
        symbol = _require_symbol(symbol)
        payload = await self.transport.get(Request(f"v6/finance/recommendationsbysymbol/{symbol}"))
        return normalize_recommendations(payload)

    async def lookup(self, query: str, asset_type: str) -> LookupResult:
        """
        Search instruments by free text within one asset category.

        Empty query returns zero totals without any upstream call. Otherwise a
        totals probe runs first, and matches are only fetched (up to
        ``lookup_max_results``) when the category has any.
        """
        category = (asset_type or "").strip().lower()
        if category not in LOOKUP_CATEGORIES:
            raise ValidationFailure(
                f"Unsupported asset type '{asset_type}'. Use one of: {', '.join(LOOKUP_CATEGORIES)}."
            )
        if len(query) < 1:
            return normalize_lookup(query, asset_type, empty_totals())

        totals_payload = await self.transport.get(
            Request("v1/finance/lookup/totals", params={"query": query})
        )
        totals = normalize_lookup_totals(totals_payload)
        total = totals.get(category) or 0
        if total <= 0:
            return normalize_lookup(query, asset_type, totals)

        payload = await self.transport.get(
            Request(
                "v1/finance/lookup",
                params={
                    "query": query,
                    "type": category,
                    "count": min(total, self.lookup_max_results),
                },
            )
        )
        return normalize_lookup(query, asset_type, totals, payload)

    async def get_market_status(self) -> MarketStatus:
        payload = await self.transport.get(Request(self.market_time_url))
        return normalize_market_status(payload)

    # --- Streaming ---

    async def subscribe(
        self,
        symbols: Iterable[str],
        channel_id: str | None = None,
    ) -> tuple[str, Unsubscribe]:
        """
        Open a dedicated streaming channel.

        Ticks are published on ``self.bus`` under the returned channel id;
        open the bus subscription before calling this to see the first ticks.
        """
        channel_id = channel_id or new_channel_id()
        unsubscribe = await self.multiplexer.subscribe(symbols, channel_id)
        return channel_id, unsubscribe

    async def stream(self, symbols: Iterable[str]) -> AsyncIterator[dict[str, Any]]:
        """Yield ticks for ``symbols`` on a private channel until the iterator is closed."""
        channel_id = new_channel_id()
        async with self.bus.subscribe(channel_id) as subscription:
            unsubscribe = await self.multiplexer.subscribe(symbols, channel_id)
            try:
                async for tick in subscription:
                    yield tick
            finally:
                await unsubscribe()


def _require_symbol(symbol: str) -> str:
    cleaned = (symbol or "").strip().upper()
    if not cleaned:
        raise ValidationFailure("A symbol is required")
    return cleaned
