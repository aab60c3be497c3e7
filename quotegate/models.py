"""Normalized entities returned by the gateway core."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class Session:
    """Crumb + cookie pair for token-requiring endpoints.

    Replaced wholesale by the SessionStore, never patched in place.
    """
    token: str
    cookies: Mapping[str, str] = field(default_factory=dict)
    acquired_at: float = field(default_factory=time.time)  # Unix seconds

    def __post_init__(self) -> None:
        object.__setattr__(self, "cookies", MappingProxyType(dict(self.cookies)))


@dataclass(frozen=True)
class Instrument:
    """Quote / instrument record keyed by a symbol-derived id."""
    id: str
    symbol: str
    instrument_type: str | None
    fields: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON transmission (provider fields plus identity)."""
        data = dict(self.fields)
        data.update({
            "id": self.id,
            "symbol": self.symbol,
            "quoteType": self.instrument_type,
        })
        return data


@dataclass(frozen=True)
class Profile:
    """Instrument built from the quote summary price module, plus extended sections."""
    instrument: Instrument
    asset_profile: Mapping[str, Any] | None = None
    summary_detail: Mapping[str, Any] | None = None
    recommendation_trend: Mapping[str, Any] | None = None

    @property
    def id(self) -> str:
        return self.instrument.id

    @property
    def symbol(self) -> str:
        return self.instrument.symbol

    def to_dict(self) -> dict[str, Any]:
        data = self.instrument.to_dict()
        data["assetProfile"] = self.asset_profile
        data["summaryDetail"] = self.summary_detail
        data["recommendationTrend"] = self.recommendation_trend
        return data


@dataclass(frozen=True)
class Bar:
    """One OHLCV bar of a historical series."""
    timestamp: int  # Unix seconds
    open: float | None
    high: float | None
    low: float | None
    close: float | None
    volume: float | None
    adj_close: float | None = None  # Absent for some instrument types

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "adjClose": self.adj_close,
        }


@dataclass(frozen=True)
class HistoricalSeries:
    id: str
    symbol: str
    instrument_type: str | None
    exchange: str | None
    price_hint: int | None
    granularity: str | None
    bars: tuple[Bar, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "quoteType": self.instrument_type,
            "exchange": self.exchange,
            "priceHint": self.price_hint,
            "dataGranularity": self.granularity,
            "data": [bar.to_dict() for bar in self.bars],
        }


@dataclass(frozen=True)
class LookupResult:
    id: str
    totals: Mapping[str, int]
    quotes: tuple[Instrument, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "totals": dict(self.totals),
            "quotes": [q.to_dict() for q in self.quotes],
        }


@dataclass(frozen=True)
class Duration:
    """Time until the next market open/close. Upstream sends the counts as strings."""
    days: str | int | None = None
    hrs: str | int | None = None
    mins: str | int | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)  # Any other keys of the entry


@dataclass(frozen=True)
class MarketStatus:
    fields: Mapping[str, Any]
    duration: Duration = field(default_factory=Duration)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.fields)
        data["duration"] = {
            **self.duration.extra,
            "days": self.duration.days,
            "hrs": self.duration.hrs,
            "mins": self.duration.mins,
        }
        return data
