"""Map raw upstream payloads onto the normalized entities in ``models``.

Every function here is pure: inputs are never mutated and the same payload
always yields the same entity. Optional upstream fields become ``None``;
missing required structure raises ``TransportFailure`` (malformed response).
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, Mapping, Sequence

from .errors import TransportFailure
from .models import (
    Bar,
    Duration,
    HistoricalSeries,
    Instrument,
    LookupResult,
    MarketStatus,
    Profile,
)


# Fixed namespace for symbol-derived ids. Changing it changes every id.
NAMESPACE = uuid.UUID("1b671a64-40d5-491e-99b0-da01ff1f3341")

LOOKUP_CATEGORIES: tuple[str, ...] = (
    "all",
    "equity",
    "index",
    "future",
    "mutualfund",
    "etf",
    "currency",
    "cryptocurrency",
)

_IDENTITY_KEYS = ("id", "symbol", "quoteType")


def instrument_id(symbol: str) -> str:
    """Deterministic id for a symbol (uuid5 in the gateway namespace)."""
    return str(uuid.uuid5(NAMESPACE, symbol))


def lookup_id(query: str, asset_type: str) -> str:
    return str(uuid.uuid5(NAMESPACE, f"{query}_{asset_type}"))


def _malformed(what: str, exc: Exception | None = None) -> TransportFailure:
    detail = f": {exc!r}" if exc is not None else ""
    return TransportFailure(f"Malformed upstream response ({what}){detail}")


def _first_result(payload: Mapping[str, Any], root: str) -> Mapping[str, Any]:
    """Return payload[root]["result"][0], surfacing upstream error blocks."""
    try:
        block = payload[root]
    except (KeyError, TypeError) as e:
        raise _malformed(root, e) from e
    results = block.get("result") if isinstance(block, Mapping) else None
    if not results:
        error = block.get("error") if isinstance(block, Mapping) else None
        if error:
            description = error.get("description") or error.get("code") or error
            raise TransportFailure(f"Upstream error ({root}): {description}")
        raise _malformed(f"{root}: empty result")
    return results[0]


def normalize_quote(raw: Mapping[str, Any]) -> Instrument:
    """One provider quote document -> Instrument."""
    symbol = raw.get("symbol") if isinstance(raw, Mapping) else None
    if not symbol:
        raise _malformed("quote without symbol")
    quote_type = raw.get("quoteType")
    return Instrument(
        id=instrument_id(symbol),
        symbol=symbol,
        instrument_type=quote_type.upper() if quote_type else None,
        fields={k: v for k, v in raw.items() if k not in _IDENTITY_KEYS},
    )


def normalize_quotes(payload: Mapping[str, Any]) -> list[Instrument]:
    """v7 quote response -> list of Instruments (upstream order)."""
    try:
        results = payload["quoteResponse"]["result"]
    except (KeyError, TypeError) as e:
        raise _malformed("quoteResponse", e) from e
    return [normalize_quote(item) for item in results or []]


def normalize_profile(payload: Mapping[str, Any]) -> Profile:
    """v10 quoteSummary response -> Profile."""
    summary = _first_result(payload, "quoteSummary")
    price = summary.get("price")
    if not price:
        raise _malformed("quoteSummary without price module")
    return Profile(
        instrument=normalize_quote(price),
        asset_profile=summary.get("assetProfile"),
        summary_detail=summary.get("summaryDetail"),
        recommendation_trend=summary.get("recommendationTrend"),
    )


def _at(values: Sequence[Any] | None, i: int) -> Any:
    if values is None or i >= len(values):
        return None
    return values[i]


def normalize_series(payload: Mapping[str, Any]) -> HistoricalSeries:
    """v8 chart response -> HistoricalSeries.

    The last upstream bar is usually still in progress, so it is always
    dropped. Bars keep upstream (ascending) order.
    """
    result = _first_result(payload, "chart")
    meta = result.get("meta") or {}
    symbol = meta.get("symbol")
    if not symbol:
        raise _malformed("chart meta without symbol")

    timestamps = result.get("timestamp") or []
    indicators = result.get("indicators") or {}
    quote = (indicators.get("quote") or [{}])[0] or {}
    adjclose = indicators.get("adjclose")
    adj_values = (adjclose[0] or {}).get("adjclose") if adjclose else None

    bars = tuple(
        Bar(
            timestamp=ts,
            open=_at(quote.get("open"), i),
            high=_at(quote.get("high"), i),
            low=_at(quote.get("low"), i),
            close=_at(quote.get("close"), i),
            volume=_at(quote.get("volume"), i),
            adj_close=_at(adj_values, i),
        )
        for i, ts in enumerate(timestamps)
    )

    instrument_type = meta.get("instrumentType")
    return HistoricalSeries(
        id=instrument_id(symbol),
        symbol=symbol,
        instrument_type=instrument_type.upper() if instrument_type else None,
        exchange=meta.get("exchangeName"),
        price_hint=meta.get("priceHint"),
        granularity=meta.get("dataGranularity"),
        bars=bars[:-1],
    )


def normalize_recommendations(payload: Mapping[str, Any]) -> list[Instrument]:
    """v6 recommendationsbysymbol response -> related Instruments."""
    result = _first_result(payload, "finance")
    return [normalize_quote(item) for item in result.get("recommendedSymbols") or []]


def empty_totals() -> dict[str, int]:
    return {category: 0 for category in LOOKUP_CATEGORIES}


def normalize_lookup_totals(payload: Mapping[str, Any]) -> dict[str, int]:
    """v1 lookup/totals response -> {category: count}."""
    result = _first_result(payload, "finance")
    totals = empty_totals()
    totals.update(result.get("totals") or {})
    return totals


def dedupe_by_id(quotes: Iterable[Instrument]) -> tuple[Instrument, ...]:
    """Keep the first Instrument seen for each id, preserving order."""
    seen: dict[str, Instrument] = {}
    for quote in quotes:
        seen.setdefault(quote.id, quote)
    return tuple(seen.values())


def normalize_lookup(
    query: str,
    asset_type: str,
    totals: Mapping[str, int],
    payload: Mapping[str, Any] | None = None,
) -> LookupResult:
    """Build a LookupResult from totals and (optionally) a v1 lookup response."""
    quotes: tuple[Instrument, ...] = ()
    if payload is not None:
        result = _first_result(payload, "finance")
        quotes = dedupe_by_id(normalize_quote(doc) for doc in result.get("documents") or [])
    return LookupResult(id=lookup_id(query, asset_type), totals=dict(totals), quotes=quotes)


def normalize_market_status(payload: Mapping[str, Any]) -> MarketStatus:
    """Market-time resource -> MarketStatus (duration defaults to all-None)."""
    if not isinstance(payload, Mapping):
        raise _malformed("market status")
    entries = payload.get("duration")
    entry: Mapping[str, Any] = {}
    if isinstance(entries, Sequence) and not isinstance(entries, str) and entries:
        if isinstance(entries[0], Mapping):
            entry = entries[0]
    return MarketStatus(
        fields={k: v for k, v in payload.items() if k != "duration"},
        duration=Duration(
            days=entry.get("days"),
            hrs=entry.get("hrs"),
            mins=entry.get("mins"),
            extra={k: v for k, v in entry.items() if k not in ("days", "hrs", "mins")},
        ),
    )


def normalize_tick(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Streaming tick: upstream ``id`` is the symbol; rewrite to (id, symbol)."""
    symbol = raw.get("id")
    if not symbol:
        raise _malformed("tick without id")
    tick = dict(raw)
    tick["symbol"] = symbol
    tick["id"] = instrument_id(symbol)
    return tick
