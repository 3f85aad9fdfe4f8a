"""Read-side conveniences for listing the biggest market movers."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.domain import MarketSource, Period
from app.models import Market
from app.repositories import MarketRepository


@dataclass(slots=True)
class TopMovers:
    period: Period
    markets: Sequence[Market]
    fallback_mode: bool = False


def is_rankable(market: Any, period: Period) -> bool:
    """A market ranks only when both its prior price and its change are known."""

    if getattr(market, "is_excluded", False):
        return False
    return (
        getattr(market, period.change_field, None) is not None
        and getattr(market, period.prior_price_field, None) is not None
    )


def rank_movers(
    markets: Iterable[Any], period: Period, *, limit: int | None = None
) -> list[Any]:
    """Sort eligible markets by absolute change, largest first.

    Equal moves are ordered by (source, market_id) so results do not depend
    on query order.
    """

    eligible = [market for market in markets if is_rankable(market, period)]
    eligible.sort(
        key=lambda market: (
            -abs(getattr(market, period.change_field)),
            MarketSource(market.source).value,
            market.market_id,
        )
    )
    return eligible[: limit or settings.top_movers_limit]


class MarketService:
    """Facade over market listings used by the API and the refresh script."""

    def __init__(self, session: Session, *, limit: int | None = None):
        self._session = session
        self._market_repo = MarketRepository(session)
        self.limit = limit or settings.top_movers_limit

    def top_movers(self, period: Period | str = Period.DAY) -> TopMovers:
        period = Period(period)
        candidates = self._market_repo.list_ranking_candidates(period)
        ranked = rank_movers(candidates, period, limit=self.limit)
        if ranked:
            return TopMovers(period=period, markets=ranked)
        recent = self._market_repo.list_recently_updated(limit=self.limit)
        return TopMovers(period=period, markets=recent, fallback_mode=True)
