"""Market-focused data access helpers."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import desc, or_, select, update
from sqlalchemy.orm import Session

from app.domain import MarketSource, NormalizedMarket, Period, PriceChanges
from app.models import Market

from .types import BatchResult, ItemStatus


def _validation_error(market: NormalizedMarket) -> str | None:
    if not market.market_id:
        return "missing market id"
    if not market.market_name:
        return "missing market name"
    if not market.market_url:
        return "missing market url"
    if not 0 <= market.current_price <= 100:
        return f"price {market.current_price} outside 0-100"
    return None


class MarketRepository:
    """Encapsulate current-state market persistence."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def upsert_markets(
        self,
        markets: Iterable[NormalizedMarket],
        *,
        last_updated: datetime,
        existing: dict[str, Market] | None = None,
    ) -> BatchResult:
        """Insert or update each market keyed by (market_id, source).

        Records that fail validation are reported in the result and skipped;
        the rest of the batch is still written.
        """

        result = BatchResult()
        markets = list(markets)
        if existing is None:
            existing = {}
            for source in {market.source for market in markets}:
                existing.update(
                    self.get_markets_by_ids(
                        source,
                        [market.market_id for market in markets if market.source == source],
                    )
                )

        for market in markets:
            key = f"{MarketSource(market.source).value}:{market.market_id}"
            reason = _validation_error(market)
            if reason is not None:
                result.record(key, ItemStatus.FAILED, reason)
                continue

            record = existing.get(market.market_id)
            if record is None:
                record = Market(
                    market_id=market.market_id,
                    source=MarketSource(market.source).value,
                    is_excluded=False,
                )
                self._session.add(record)
                existing[market.market_id] = record
                status = ItemStatus.ADDED
            else:
                status = ItemStatus.UPDATED

            record.market_name = market.market_name
            record.event_name = market.event_name or market.market_id
            record.market_url = market.market_url
            record.event_url = market.event_url
            record.description = market.description
            record.creation_date = market.creation_date
            record.resolution_date = market.resolution_date
            record.current_price = market.current_price
            record.category = market.category
            record.last_updated = last_updated
            result.record(key, status)

        self._session.flush()
        return result

    def apply_price_changes(self, market: Market, changes: PriceChanges) -> None:
        for field_name, value in changes.as_dict().items():
            setattr(market, field_name, value)

    def clear_stale_price_changes(self, source: MarketSource | str, reference_time: datetime) -> int:
        """Blank prior prices and changes on rows the latest refresh of ``source`` did not touch.

        Closed and resolved markets leave their feed, so their last stored
        changes would otherwise stay in the ranking.
        """

        cleared = PriceChanges().as_dict()
        query = (
            update(Market)
            .where(
                Market.source == MarketSource(source).value,
                Market.last_updated != reference_time,
                or_(*(getattr(Market, field).is_not(None) for field in cleared)),
            )
            .values(**cleared)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(query).rowcount or 0

    # ------------------------------------------------------------------
    # Queries

    def get_markets_by_ids(
        self, source: MarketSource | str, market_ids: Sequence[str]
    ) -> dict[str, Market]:
        if not market_ids:
            return {}
        query = select(Market).where(
            Market.source == MarketSource(source).value,
            Market.market_id.in_(list(market_ids)),
        )
        return {market.market_id: market for market in self._session.execute(query).scalars()}

    def list_ranking_candidates(self, period: Period) -> list[Market]:
        """Non-excluded markets holding both a prior price and a change for ``period``."""

        change_column = getattr(Market, period.change_field)
        prior_column = getattr(Market, period.prior_price_field)
        query = select(Market).where(
            Market.is_excluded.is_(False),
            change_column.is_not(None),
            prior_column.is_not(None),
        )
        return list(self._session.execute(query).scalars().all())

    def list_recently_updated(self, *, limit: int) -> list[Market]:
        query = (
            select(Market)
            .where(Market.is_excluded.is_(False))
            .order_by(desc(Market.last_updated), Market.source, Market.market_id)
            .limit(limit)
        )
        return list(self._session.execute(query).scalars().all())
