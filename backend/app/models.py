from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamps that round-trip as UTC on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        # SQLite stores text and compares lexically; keep one canonical form.
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Market(Base):
    __tablename__ = "markets"

    market_id: Mapped[str] = mapped_column(String, primary_key=True)
    source: Mapped[str] = mapped_column(String(20), primary_key=True)
    market_name: Mapped[str] = mapped_column(Text, nullable=False)
    event_name: Mapped[str] = mapped_column(Text, nullable=False)
    market_url: Mapped[str] = mapped_column(String, nullable=False)
    event_url: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    creation_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolution_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    current_price: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str | None] = mapped_column(String, nullable=True)

    price_1_day_ago: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_1_week_ago: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_1_month_ago: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_change_1_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_change_1_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_change_1_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_excluded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    excluded_by: Mapped[str | None] = mapped_column(String, nullable=True)
    excluded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_markets_source", "source"),
        Index("ix_markets_last_updated", "last_updated"),
        Index("ix_markets_excluded_change_1_day", "is_excluded", "price_change_1_day"),
        Index("ix_markets_excluded_change_1_week", "is_excluded", "price_change_1_week"),
        Index("ix_markets_excluded_change_1_month", "is_excluded", "price_change_1_month"),
    )


class HistoricalPrice(Base):
    __tablename__ = "historical_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_historical_prices_market_source_timestamp", "market_id", "source", "timestamp"),
        Index("ix_historical_prices_timestamp", "timestamp"),
    )
