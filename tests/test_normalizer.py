"""Tests for payload normalization."""

import copy
import uuid

import pytest

from quotegate.errors import TransportFailure
from quotegate.normalizer import (
    LOOKUP_CATEGORIES,
    NAMESPACE,
    dedupe_by_id,
    empty_totals,
    instrument_id,
    lookup_id,
    normalize_lookup,
    normalize_lookup_totals,
    normalize_market_status,
    normalize_profile,
    normalize_quote,
    normalize_quotes,
    normalize_recommendations,
    normalize_series,
    normalize_tick,
)

from conftest import chart_payload


class TestIds:

    def test_id_is_deterministic(self):
        assert instrument_id("AAPL") == instrument_id("AAPL")

    def test_distinct_symbols_distinct_ids(self):
        symbols = ["AAPL", "MSFT", "aapl", "BTC-USD", "^GSPC", "EURUSD=X"]
        assert len({instrument_id(s) for s in symbols}) == len(symbols)

    def test_id_is_uuid5_in_fixed_namespace(self):
        assert instrument_id("XYZ") == str(uuid.uuid5(NAMESPACE, "XYZ"))
        assert uuid.UUID(instrument_id("XYZ")).version == 5

    def test_lookup_id_uses_query_and_type(self):
        assert lookup_id("app", "equity") == instrument_id("app_equity")
        assert lookup_id("app", "equity") != lookup_id("app", "etf")


class TestQuotes:

    def test_quote_type_uppercased(self):
        quote = normalize_quote({"symbol": "XYZ", "quoteType": "equity", "regularMarketPrice": 12.5})
        assert quote.instrument_type == "EQUITY"
        assert quote.id == instrument_id("XYZ")
        assert quote.fields["regularMarketPrice"] == 12.5

    def test_missing_quote_type_is_none(self):
        quote = normalize_quote({"symbol": "XYZ"})
        assert quote.instrument_type is None
        assert quote.to_dict()["quoteType"] is None

    def test_quote_without_symbol_is_malformed(self):
        with pytest.raises(TransportFailure):
            normalize_quote({"quoteType": "EQUITY"})

    def test_to_dict_overlays_identity(self):
        quote = normalize_quote({"symbol": "XYZ", "id": "upstream-id", "quoteType": "etf", "currency": "USD"})
        data = quote.to_dict()
        assert data["id"] == instrument_id("XYZ")
        assert data["quoteType"] == "ETF"
        assert data["currency"] == "USD"

    def test_quote_response(self):
        payload = {"quoteResponse": {"result": [{"symbol": "A"}, {"symbol": "B"}], "error": None}}
        quotes = normalize_quotes(payload)
        assert [q.symbol for q in quotes] == ["A", "B"]

    def test_quote_response_malformed(self):
        with pytest.raises(TransportFailure):
            normalize_quotes({"unexpected": {}})


class TestSeries:

    def test_drops_last_bar(self):
        series = normalize_series(chart_payload(n=3))
        assert len(series.bars) == 2
        assert [b.timestamp for b in series.bars] == [1700000000, 1700086400]
        assert series.bars[0].open == 10.0
        assert series.bars[1].close == 11.5

    def test_metadata(self):
        series = normalize_series(chart_payload("XYZ"))
        assert series.id == instrument_id("XYZ")
        assert series.instrument_type == "EQUITY"
        assert series.exchange == "NMS"
        assert series.price_hint == 2
        assert series.granularity == "1d"

    def test_missing_adjclose_is_none(self):
        series = normalize_series(chart_payload(n=3, adjclose=False))
        assert all(bar.adj_close is None for bar in series.bars)

    def test_adjclose_present(self):
        series = normalize_series(chart_payload(n=3))
        assert series.bars[0].adj_close == 10.4

    def test_no_timestamps_yields_empty_series(self):
        payload = chart_payload(n=0)
        del payload["chart"]["result"][0]["timestamp"]
        assert normalize_series(payload).bars == ()

    def test_upstream_error_block(self):
        payload = {"chart": {"result": None, "error": {"code": "Not Found", "description": "No data found"}}}
        with pytest.raises(TransportFailure, match="No data found"):
            normalize_series(payload)

    def test_idempotent_and_pure(self):
        payload = chart_payload(n=4)
        snapshot = copy.deepcopy(payload)
        assert normalize_series(payload) == normalize_series(payload)
        assert payload == snapshot


class TestProfile:

    def test_profile_sections(self):
        payload = {"quoteSummary": {"result": [{
            "price": {"symbol": "XYZ", "quoteType": "EQUITY", "longName": "XYZ Corp"},
            "assetProfile": {"sector": "Technology"},
        }], "error": None}}
        profile = normalize_profile(payload)
        assert profile.symbol == "XYZ"
        assert profile.instrument.fields["longName"] == "XYZ Corp"
        assert profile.asset_profile == {"sector": "Technology"}
        assert profile.summary_detail is None
        assert profile.recommendation_trend is None

    def test_profile_without_price_is_malformed(self):
        with pytest.raises(TransportFailure):
            normalize_profile({"quoteSummary": {"result": [{"assetProfile": {}}]}})


class TestRecommendations:

    def test_recommended_symbols(self):
        payload = {"finance": {"result": [{
            "symbol": "XYZ",
            "recommendedSymbols": [{"symbol": "ABC", "score": 0.2}, {"symbol": "DEF", "score": 0.1}],
        }], "error": None}}
        related = normalize_recommendations(payload)
        assert [r.symbol for r in related] == ["ABC", "DEF"]
        assert related[0].fields["score"] == 0.2


class TestLookup:

    def test_empty_totals_cover_all_categories(self):
        totals = empty_totals()
        assert set(totals) == set(LOOKUP_CATEGORIES)
        assert all(v == 0 for v in totals.values())

    def test_totals_fill_missing_categories(self):
        payload = {"finance": {"result": [{"totals": {"all": 3, "equity": 3}}]}}
        totals = normalize_lookup_totals(payload)
        assert totals["equity"] == 3
        assert totals["etf"] == 0

    def test_dedupes_by_id(self):
        payload = {"finance": {"result": [{"documents": [
            {"symbol": "XYZ", "shortName": "first"},
            {"symbol": "XYZ", "shortName": "second"},
            {"symbol": "ABC"},
        ]}]}}
        result = normalize_lookup("xy", "equity", {"equity": 3}, payload)
        assert [q.symbol for q in result.quotes] == ["XYZ", "ABC"]
        assert result.quotes[0].fields["shortName"] == "first"

    def test_dedupe_keeps_order(self):
        quotes = [normalize_quote({"symbol": s}) for s in ["B", "A", "B", "C", "A"]]
        assert [q.symbol for q in dedupe_by_id(quotes)] == ["B", "A", "C"]


class TestMarketStatus:

    def test_duration_defaults_to_none(self):
        status = normalize_market_status({"status": "closed", "message": "U.S. markets closed"})
        assert status.duration.days is None
        assert status.duration.hrs is None
        assert status.duration.mins is None
        assert status.to_dict()["duration"] == {"days": None, "hrs": None, "mins": None}

    def test_duration_first_entry(self):
        status = normalize_market_status({
            "status": "open",
            "duration": [{"days": "0", "hrs": "2", "mins": "15"}, {"days": "9"}],
        })
        assert status.duration.hrs == "2"
        assert status.duration.mins == "15"
        assert "duration" not in status.fields

    def test_duration_keeps_extra_keys(self):
        status = normalize_market_status({
            "status": "closed",
            "duration": [{"days": "1", "hrs": "3", "mins": "0", "marketOpen": "09:30"}],
        })
        assert status.to_dict()["duration"] == {"days": "1", "hrs": "3", "mins": "0", "marketOpen": "09:30"}

    @pytest.mark.parametrize("duration", ["3h", [], ["3h"], {"hrs": "3"}, None, 5])
    def test_unexpected_duration_shape_defaults_to_none(self, duration):
        status = normalize_market_status({"status": "open", "duration": duration})
        assert status.to_dict()["duration"] == {"days": None, "hrs": None, "mins": None}


class TestTick:

    def test_rewrites_symbol_and_id(self):
        tick = normalize_tick({"id": "XYZ", "price": 12.5})
        assert tick["symbol"] == "XYZ"
        assert tick["id"] == instrument_id("XYZ")
        assert tick["price"] == 12.5

    def test_input_not_mutated(self):
        raw = {"id": "XYZ", "price": 12.5}
        normalize_tick(raw)
        assert raw == {"id": "XYZ", "price": 12.5}

    def test_tick_without_id(self):
        with pytest.raises(TransportFailure):
            normalize_tick({"price": 1.0})
