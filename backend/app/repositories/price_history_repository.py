"""Append-only access to historical price snapshots."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import desc, insert, select, tuple_
from sqlalchemy.orm import Session

from app.domain import MarketSource
from app.models import HistoricalPrice

from .types import BatchResult, ItemStatus


@dataclass(slots=True)
class SnapshotInput:
    market_id: str
    source: MarketSource
    price: float
    timestamp: datetime


class PriceHistoryRepository:
    """Snapshots are only ever inserted; the core never updates or deletes them."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append_snapshots(self, snapshots: Iterable[SnapshotInput]) -> BatchResult:
        result = BatchResult()
        rows: list[dict[str, object]] = []
        for snapshot in snapshots:
            key = f"{MarketSource(snapshot.source).value}:{snapshot.market_id}"
            rows.append(
                {
                    "market_id": snapshot.market_id,
                    "source": MarketSource(snapshot.source).value,
                    "price": float(snapshot.price),
                    "timestamp": snapshot.timestamp,
                }
            )
            result.record(key, ItemStatus.INSERTED)

        if rows:
            self._session.execute(insert(HistoricalPrice), rows)
        return result

    def find_price_near(
        self,
        market_id: str,
        source: MarketSource | str,
        target: datetime,
        tolerance: timedelta,
    ) -> float | None:
        """Return the most recent snapshot price within ``target +/- tolerance``."""

        query = (
            select(HistoricalPrice.price)
            .where(
                HistoricalPrice.market_id == market_id,
                HistoricalPrice.source == MarketSource(source).value,
                HistoricalPrice.timestamp >= target - tolerance,
                HistoricalPrice.timestamp <= target + tolerance,
            )
            .order_by(desc(HistoricalPrice.timestamp), desc(HistoricalPrice.id))
            .limit(1)
        )
        return self._session.execute(query).scalar_one_or_none()

    def find_prices_near(
        self,
        keys: Sequence[tuple[str, str]],
        target: datetime,
        tolerance: timedelta,
    ) -> dict[tuple[str, str], float]:
        """Batched form of :meth:`find_price_near` for several (market_id, source) keys."""

        if not keys:
            return {}
        query = (
            select(HistoricalPrice.market_id, HistoricalPrice.source, HistoricalPrice.price)
            .where(
                tuple_(HistoricalPrice.market_id, HistoricalPrice.source).in_(list(keys)),
                HistoricalPrice.timestamp >= target - tolerance,
                HistoricalPrice.timestamp <= target + tolerance,
            )
            .order_by(desc(HistoricalPrice.timestamp), desc(HistoricalPrice.id))
        )
        prices: dict[tuple[str, str], float] = {}
        for market_id, source, price in self._session.execute(query):
            prices.setdefault((market_id, source), price)
        return prices

