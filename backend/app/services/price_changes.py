"""Period-over-period price change calculation from historical snapshots.

Changes are expressed in percentage points (``+32`` means the market moved
from 38 to 70). A period is left empty when the market did not exist at the
lookback instant or when no snapshot was recorded close enough to it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy.orm import Session

from app.core.config import settings
from app.domain import MarketSource, Period, PriceChanges, round_half_up
from app.repositories import PriceHistoryRepository


class PricedMarket(Protocol):
    market_id: str
    source: str
    current_price: float
    creation_date: datetime | None


@dataclass(slots=True)
class MarketPriceChanges:
    market: PricedMarket
    changes: PriceChanges


def market_existed_at(market: PricedMarket, instant: datetime) -> bool:
    """Unknown creation dates cannot disprove existence."""

    if market.creation_date is None:
        return True
    return market.creation_date <= instant


def price_change(current_price: float, prior_price: float | None) -> int | None:
    if prior_price is None:
        return None
    return round_half_up(current_price - prior_price)


def _market_key(market: PricedMarket) -> tuple[str, str]:
    return market.market_id, MarketSource(market.source).value


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _build_changes(current_price: float, priors: dict[Period, float | None]) -> PriceChanges:
    changes = PriceChanges()
    for period in Period:
        prior = priors.get(period)
        setattr(changes, period.prior_price_field, prior)
        setattr(changes, period.change_field, price_change(current_price, prior))
    return changes


class PriceChangeEngine:
    """Read-only over the history store; callers decide what to do with results."""

    def __init__(
        self,
        session: Session,
        *,
        tolerance: timedelta | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._history = PriceHistoryRepository(session)
        self.tolerance = tolerance or timedelta(hours=settings.price_lookup_tolerance_hours)
        self.batch_size = batch_size or settings.price_change_batch_size

    def compute_changes(
        self, market: PricedMarket, reference_time: datetime | None = None
    ) -> PriceChanges:
        reference_time = _as_utc(reference_time or datetime.now(timezone.utc))
        priors: dict[Period, float | None] = {}
        for period in Period:
            target = reference_time - period.lookback
            if not market_existed_at(market, target):
                priors[period] = None
                continue
            priors[period] = self._history.find_price_near(
                market.market_id, market.source, target, self.tolerance
            )
        return _build_changes(market.current_price, priors)

    def compute_changes_batch(
        self,
        markets: Sequence[PricedMarket],
        reference_time: datetime | None = None,
    ) -> list[MarketPriceChanges]:
        """Compute changes ``batch_size`` markets at a time, one lookup per period per batch."""

        reference_time = _as_utc(reference_time or datetime.now(timezone.utc))
        results: list[MarketPriceChanges] = []
        for start in range(0, len(markets), self.batch_size):
            batch = markets[start : start + self.batch_size]
            found: dict[Period, dict[tuple[str, str], float]] = {}
            for period in Period:
                target = reference_time - period.lookback
                keys = [_market_key(market) for market in batch if market_existed_at(market, target)]
                found[period] = self._history.find_prices_near(keys, target, self.tolerance)

            for market in batch:
                key = _market_key(market)
                priors = {period: found[period].get(key) for period in Period}
                results.append(
                    MarketPriceChanges(
                        market=market,
                        changes=_build_changes(market.current_price, priors),
                    )
                )
        return results
