"""Typed domain representations used across ingestion, persistence, and APIs."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class MarketSource(str, Enum):
    KALSHI = "kalshi"
    POLYMARKET = "polymarket"
    MANIFOLD = "manifold"


class Period(str, Enum):
    """Lookback periods used for price change calculation and ranking."""

    DAY = "1d"
    WEEK = "1w"
    MONTH = "1m"

    @property
    def lookback(self) -> timedelta:
        return _LOOKBACKS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def prior_price_field(self) -> str:
        return f"price_1_{_SUFFIXES[self]}_ago"

    @property
    def change_field(self) -> str:
        return f"price_change_1_{_SUFFIXES[self]}"


_LOOKBACKS = {
    Period.DAY: timedelta(days=1),
    Period.WEEK: timedelta(days=7),
    Period.MONTH: timedelta(days=30),
}
_LABELS = {
    Period.DAY: "the past day",
    Period.WEEK: "the past week",
    Period.MONTH: "the past month",
}
_SUFFIXES = {Period.DAY: "day", Period.WEEK: "week", Period.MONTH: "month"}


def round_half_up(value: float) -> int:
    """Round halves towards positive infinity (2.5 -> 3, -2.5 -> -2)."""

    return int(math.floor(value + 0.5))


@dataclass(slots=True)
class NormalizedMarket:
    """Source listing translated into the shared schema, prior to storage."""

    market_id: str
    source: MarketSource
    market_name: str
    event_name: str
    market_url: str
    current_price: int
    event_url: str | None = None
    description: str | None = None
    creation_date: datetime | None = None
    resolution_date: datetime | None = None
    category: str | None = None


@dataclass(slots=True)
class PriceChanges:
    price_1_day_ago: float | None = None
    price_1_week_ago: float | None = None
    price_1_month_ago: float | None = None
    price_change_1_day: int | None = None
    price_change_1_week: int | None = None
    price_change_1_month: int | None = None

    def change(self, period: Period) -> int | None:
        return getattr(self, period.change_field)

    def as_dict(self) -> dict[str, float | int | None]:
        return {
            "price_1_day_ago": self.price_1_day_ago,
            "price_1_week_ago": self.price_1_week_ago,
            "price_1_month_ago": self.price_1_month_ago,
            "price_change_1_day": self.price_change_1_day,
            "price_change_1_week": self.price_change_1_week,
            "price_change_1_month": self.price_change_1_month,
        }
