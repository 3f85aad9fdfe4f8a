"""Refresh cycle: fetch every source, snapshot prior prices, upsert current state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db import session_scope
from app.domain import MarketSource, NormalizedMarket
from app.repositories import (
    ItemStatus,
    MarketRepository,
    PriceHistoryRepository,
    SnapshotInput,
)
from app.services.price_changes import PriceChangeEngine

from .base import SourceAdapter
from .kalshi import KalshiAdapter
from .manifold import ManifoldAdapter
from .polymarket import PolymarketAdapter

_REFRESH_LOCK = asyncio.Lock()


class RefreshInProgressError(RuntimeError):
    """Raised when a refresh starts while another one is still running."""


@dataclass(slots=True)
class SourceRefreshResult:
    source: MarketSource
    updated: int = 0
    added: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int | str]:
        return {
            "source": self.source.value,
            "updated": self.updated,
            "added": self.added,
            "errors": self.errors,
        }


@dataclass(slots=True)
class RefreshSummary:
    timestamp: datetime
    results: dict[MarketSource, SourceRefreshResult] = field(default_factory=dict)

    def result(self, source: MarketSource | str) -> SourceRefreshResult:
        source = MarketSource(source)
        return self.results.setdefault(source, SourceRefreshResult(source=source))

    @property
    def total_updated(self) -> int:
        return sum(result.updated for result in self.results.values())

    @property
    def total_added(self) -> int:
        return sum(result.added for result in self.results.values())

    @property
    def total_errors(self) -> int:
        return sum(result.errors for result in self.results.values())

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "total_updated": self.total_updated,
            "total_added": self.total_added,
            "total_errors": self.total_errors,
            "sources": {
                source.value: result.to_dict() for source, result in self.results.items()
            },
        }


def default_adapters() -> list[SourceAdapter]:
    return [KalshiAdapter(), PolymarketAdapter(), ManifoldAdapter()]


def _dedupe(markets: Sequence[NormalizedMarket]) -> list[NormalizedMarket]:
    latest: dict[str, NormalizedMarket] = {}
    for market in markets:
        latest[market.market_id] = market
    return list(latest.values())


class RefreshOrchestrator:
    """Run one refresh cycle across all sources.

    A source that cannot be fetched contributes an empty batch and an error;
    the other sources are still written.
    """

    def __init__(
        self,
        *,
        adapters: Sequence[SourceAdapter] | None = None,
        session_factory: sessionmaker[Session] | None = None,
        chunk_size: int | None = None,
        clock: Callable[[], datetime] | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.adapters = list(adapters) if adapters is not None else default_adapters()
        self._session_factory = session_factory
        self.chunk_size = chunk_size or settings.refresh_chunk_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = lock or _REFRESH_LOCK

    async def refresh_all(self) -> RefreshSummary:
        if self._lock.locked():
            raise RefreshInProgressError("A market refresh is already running")
        async with self._lock:
            return await self._refresh()

    async def _refresh(self) -> RefreshSummary:
        reference_time = self._clock()
        summary = RefreshSummary(timestamp=reference_time)
        logger.info("Starting market data refresh at {}", reference_time.isoformat())

        fetched = await asyncio.gather(*(self._fetch_source(adapter) for adapter in self.adapters))
        logger.info(
            "Fetched {}",
            ", ".join(
                f"{len(markets)} {adapter.source.value}"
                for adapter, (markets, _) in zip(self.adapters, fetched)
            ),
        )

        for adapter, (markets, failed) in zip(self.adapters, fetched):
            result = summary.result(adapter.source)
            if failed:
                result.errors += 1
                continue
            # Session work is blocking; keep it off the event loop.
            await asyncio.to_thread(self._process_source, result, markets, reference_time)

        logger.info(
            "Market data refresh complete: {} updated, {} added, {} errors",
            summary.total_updated,
            summary.total_added,
            summary.total_errors,
        )
        return summary

    async def _fetch_source(self, adapter: SourceAdapter) -> tuple[list[NormalizedMarket], bool]:
        try:
            return await adapter.fetch_markets(), False
        except Exception:
            logger.exception("Failed to fetch {} markets", adapter.source.value)
            return [], True

    def _process_source(
        self,
        result: SourceRefreshResult,
        markets: Sequence[NormalizedMarket],
        reference_time: datetime,
    ) -> None:
        source = result.source
        markets = _dedupe(markets)
        if markets:
            self._process_chunks(result, markets, reference_time)

        try:
            with session_scope(self._session_factory) as session:
                cleared = MarketRepository(session).clear_stale_price_changes(
                    source, reference_time
                )
        except Exception:
            logger.exception("Error clearing stale {} price changes", source.value)
            result.errors += 1
        else:
            if cleared:
                logger.info(
                    "{}: cleared price changes on {} markets no longer listed", source.value, cleared
                )

    def _process_chunks(
        self,
        result: SourceRefreshResult,
        markets: Sequence[NormalizedMarket],
        reference_time: datetime,
    ) -> None:
        source = result.source
        total_chunks = (len(markets) + self.chunk_size - 1) // self.chunk_size
        logger.info(
            "Processing {} {} markets in chunks of {}", len(markets), source.value, self.chunk_size
        )
        for index, start in enumerate(range(0, len(markets), self.chunk_size), start=1):
            chunk = markets[start : start + self.chunk_size]
            try:
                added, updated, failed = self._process_chunk(source, chunk, reference_time)
            except Exception:
                logger.exception(
                    "Error processing {} chunk {}/{}", source.value, index, total_chunks
                )
                result.errors += len(chunk)
                continue
            result.added += added
            result.updated += updated
            result.errors += failed
            logger.info(
                "  {} chunk {}/{}: processed {} markets", source.value, index, total_chunks, len(chunk)
            )

        logger.info(
            "{} complete: {} added, {} updated, {} errors",
            source.value,
            result.added,
            result.updated,
            result.errors,
        )

    def _process_chunk(
        self,
        source: MarketSource,
        chunk: Sequence[NormalizedMarket],
        reference_time: datetime,
    ) -> tuple[int, int, int]:
        with session_scope(self._session_factory) as session:
            market_repo = MarketRepository(session)
            history_repo = PriceHistoryRepository(session)

            existing = market_repo.get_markets_by_ids(source, [market.market_id for market in chunk])
            prior_prices = {market_id: record.current_price for market_id, record in existing.items()}

            upserted = market_repo.upsert_markets(
                chunk, last_updated=reference_time, existing=existing
            )
            updated_ids = {
                outcome.key.split(":", 1)[1]
                for outcome in upserted.outcomes
                if outcome.status == ItemStatus.UPDATED
            }
            snapshots = history_repo.append_snapshots(
                SnapshotInput(
                    market_id=market_id,
                    source=source,
                    price=prior_prices[market_id],
                    timestamp=reference_time,
                )
                for market_id in sorted(updated_ids)
            )

            records = [existing[market.market_id] for market in chunk if market.market_id in existing]
            engine = PriceChangeEngine(session)
            for item in engine.compute_changes_batch(records, reference_time):
                market_repo.apply_price_changes(item.market, item.changes)

            failures = upserted.failures + snapshots.failures
            for failure in failures:
                logger.warning("{}: skipped {} ({})", source.value, failure.key, failure.reason)
            return upserted.added, upserted.updated, len(failures)
