"""Decoding of Yahoo streamer pricing frames.

Frames are base64-encoded ``PricingData`` protobuf messages, either bare or
wrapped in a JSON envelope ``{"type": "pricing", "message": "<base64>"}``.
The message class is built from a descriptor at import time so no generated
``_pb2`` module is needed.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError


_F = descriptor_pb2.FieldDescriptorProto

# (name, field number, wire type) as published by the streamer
PRICING_FIELDS: tuple[tuple[str, int, int], ...] = (
    ("id", 1, _F.TYPE_STRING),
    ("price", 2, _F.TYPE_FLOAT),
    ("time", 3, _F.TYPE_SINT64),
    ("currency", 4, _F.TYPE_STRING),
    ("exchange", 5, _F.TYPE_STRING),
    ("quoteType", 6, _F.TYPE_INT32),
    ("marketHours", 7, _F.TYPE_INT32),
    ("changePercent", 8, _F.TYPE_FLOAT),
    ("dayVolume", 9, _F.TYPE_SINT64),
    ("dayHigh", 10, _F.TYPE_FLOAT),
    ("dayLow", 11, _F.TYPE_FLOAT),
    ("change", 12, _F.TYPE_FLOAT),
    ("shortName", 13, _F.TYPE_STRING),
    ("expireDate", 14, _F.TYPE_SINT64),
    ("openPrice", 15, _F.TYPE_FLOAT),
    ("previousClose", 16, _F.TYPE_FLOAT),
    ("strikePrice", 17, _F.TYPE_FLOAT),
    ("underlyingSymbol", 18, _F.TYPE_STRING),
    ("openInterest", 19, _F.TYPE_SINT64),
    ("optionsType", 20, _F.TYPE_INT32),
    ("miniOption", 21, _F.TYPE_SINT64),
    ("lastSize", 22, _F.TYPE_SINT64),
    ("bid", 23, _F.TYPE_FLOAT),
    ("bidSize", 24, _F.TYPE_SINT64),
    ("ask", 25, _F.TYPE_FLOAT),
    ("askSize", 26, _F.TYPE_SINT64),
    ("priceHint", 27, _F.TYPE_SINT64),
    ("vol_24hr", 28, _F.TYPE_SINT64),
    ("volAllCurrencies", 29, _F.TYPE_SINT64),
    ("fromcurrency", 30, _F.TYPE_STRING),
    ("lastMarket", 31, _F.TYPE_STRING),
    ("circulatingSupply", 32, _F.TYPE_DOUBLE),
    ("marketcap", 33, _F.TYPE_DOUBLE),
)

QUOTE_TYPES: dict[int, str] = {
    0: "NONE",
    5: "ALTSYMBOL",
    7: "HEARTBEAT",
    8: "EQUITY",
    9: "INDEX",
    11: "MUTUALFUND",
    12: "MONEYMARKET",
    13: "OPTION",
    14: "CURRENCY",
    15: "WARRANT",
    17: "BOND",
    18: "FUTURE",
    20: "ETF",
    23: "COMMODITY",
    28: "ECNQUOTE",
    41: "CRYPTOCURRENCY",
    42: "INDICATOR",
    1000: "INDUSTRY",
}

MARKET_HOURS: dict[int, str] = {
    0: "PRE_MARKET",
    1: "REGULAR_MARKET",
    2: "POST_MARKET",
    3: "EXTENDED_HOURS_MARKET",
}

OPTION_TYPES: dict[int, str] = {0: "CALL", 1: "PUT"}

_ENUM_FIELDS = {
    "quoteType": QUOTE_TYPES,
    "marketHours": MARKET_HOURS,
    "optionsType": OPTION_TYPES,
}


class FrameDecodeError(ValueError):
    """A streamer frame could not be decoded into a pricing message."""


def _build_message_class() -> type:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="quotegate/pricing.proto",
        package="quotegate",
        syntax="proto3",
    )
    message_proto = file_proto.message_type.add(name="PricingData")
    for name, number, field_type in PRICING_FIELDS:
        message_proto.field.add(name=name, number=number, type=field_type, label=_F.LABEL_OPTIONAL)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return message_factory.GetMessageClass(pool.FindMessageTypeByName("quotegate.PricingData"))


PricingData = _build_message_class()


def _extract_payload(frame: str | bytes) -> str | bytes:
    """Unwrap the JSON envelope used by the v2 streamer, if present."""
    text = frame.decode("utf-8") if isinstance(frame, bytes) else frame
    stripped = text.strip()
    if not stripped.startswith("{"):
        return stripped
    try:
        envelope = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Invalid JSON envelope: {e}") from e
    message = envelope.get("message")
    if not message:
        raise FrameDecodeError(f"Envelope without message (type={envelope.get('type')!r})")
    return message


def decode_frame(frame: str | bytes) -> dict[str, Any]:
    """Decode one streamer frame into a dict of the fields that are set."""
    payload = _extract_payload(frame)
    try:
        raw = base64.b64decode(payload, validate=True)
        message = PricingData()
        message.ParseFromString(raw)
    except (binascii.Error, DecodeError) as e:
        raise FrameDecodeError(f"Invalid pricing frame: {e}") from e

    tick: dict[str, Any] = {}
    for field_descriptor, value in message.ListFields():
        labels = _ENUM_FIELDS.get(field_descriptor.name)
        tick[field_descriptor.name] = labels.get(value, value) if labels else value
    return tick
