from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..errors import ValidationFailure


class Interval(str, Enum):
    ONE_MINUTE = "ONE_MINUTE"
    FIVE_MINUTES = "FIVE_MINUTES"
    FIFTEEN_MINUTES = "FIFTEEN_MINUTES"
    THIRTY_MINUTES = "THIRTY_MINUTES"
    ONE_HOUR = "ONE_HOUR"
    ONE_DAY = "ONE_DAY"
    ONE_WEEK = "ONE_WEEK"
    ONE_MONTH = "ONE_MONTH"
    THREE_MONTHS = "THREE_MONTHS"


@dataclass(frozen=True)
class ChartRange:
    interval: str  # upstream granularity
    range: str  # upstream lookback window


INTERVAL_RANGES: dict[Interval, ChartRange] = {
    Interval.ONE_MINUTE: ChartRange("1m", "7d"),
    Interval.FIVE_MINUTES: ChartRange("5m", "30d"),
    Interval.FIFTEEN_MINUTES: ChartRange("15m", "30d"),
    Interval.THIRTY_MINUTES: ChartRange("30m", "30d"),
    Interval.ONE_HOUR: ChartRange("1h", "60d"),
    Interval.ONE_DAY: ChartRange("1d", "2y"),
    Interval.ONE_WEEK: ChartRange("1wk", "10y"),
    Interval.ONE_MONTH: ChartRange("1mo", "20y"),
    Interval.THREE_MONTHS: ChartRange("3mo", "max"),
}


def parse_interval(value: Interval | str) -> Interval:
    """Accept an Interval or its name (e.g. "one_day") and return the Interval."""
    if isinstance(value, Interval):
        return value
    try:
        return Interval[str(value).strip().upper()]
    except KeyError:
        allowed = ", ".join(i.name for i in Interval)
        raise ValidationFailure(f"Unsupported interval '{value}'. Use one of: {allowed}.") from None


def chart_range(value: Interval | str) -> ChartRange:
    """Upstream chart query parameters for an interval."""
    return INTERVAL_RANGES[parse_interval(value)]
