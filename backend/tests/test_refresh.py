from __future__ import annotations

import asyncio
import threading
import time
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.domain import MarketSource, NormalizedMarket, Period
from app.models import HistoricalPrice, Market
from app.services.market_service import MarketService
from ingestion.refresh import RefreshInProgressError, RefreshOrchestrator


class FakeAdapter:
    def __init__(self, source, markets=None, error=None):
        self.source = MarketSource(source)
        self.markets = list(markets or [])
        self.error = error
        self.calls = 0

    async def fetch_markets(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.markets)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _normalized(market_id, price, source="kalshi", **fields):
    return NormalizedMarket(
        market_id=market_id,
        source=MarketSource(source),
        market_name=fields.pop("market_name", f"Market {market_id}"),
        event_name=f"Event {market_id}",
        market_url=f"https://example.test/{source}/{market_id}",
        current_price=price,
        **fields,
    )


def _orchestrator(session_factory, adapters, clock, **kwargs):
    return RefreshOrchestrator(
        adapters=adapters,
        session_factory=session_factory,
        clock=clock,
        lock=asyncio.Lock(),
        **kwargs,
    )


def _snapshots(session_factory):
    with session_factory() as session:
        return session.execute(
            select(HistoricalPrice).order_by(HistoricalPrice.id)
        ).scalars().all()


@pytest.mark.asyncio
async def test_existing_markets_get_one_snapshot_of_their_prior_price(session_factory, reference_time):
    adapter = FakeAdapter("kalshi", [_normalized("FED", 40)])
    clock = Clock(reference_time)
    orchestrator = _orchestrator(session_factory, [adapter], clock)

    first = await orchestrator.refresh_all()
    assert first.result("kalshi").added == 1
    assert first.result("kalshi").updated == 0
    assert _snapshots(session_factory) == []

    adapter.markets = [_normalized("FED", 70)]
    clock.now = reference_time + timedelta(days=1)
    second = await orchestrator.refresh_all()

    assert second.result("kalshi").updated == 1
    snapshots = _snapshots(session_factory)
    assert [(s.market_id, s.source, s.price) for s in snapshots] == [("FED", "kalshi", 40.0)]
    assert snapshots[0].timestamp == clock.now

    with session_factory() as session:
        market = session.get(Market, ("FED", "kalshi"))
        assert market.current_price == 70
        assert market.last_updated == clock.now
        assert market.price_change_1_day is None


@pytest.mark.asyncio
async def test_refresh_persists_price_changes(session_factory, reference_time):
    adapter = FakeAdapter("polymarket", [_normalized("0xabc", 40, source="polymarket")])
    clock = Clock(reference_time)
    orchestrator = _orchestrator(session_factory, [adapter], clock)

    await orchestrator.refresh_all()
    for days, price in ((1, 70), (2, 75)):
        adapter.markets = [_normalized("0xabc", price, source="polymarket")]
        clock.now = reference_time + timedelta(days=days)
        await orchestrator.refresh_all()

    with session_factory() as session:
        market = session.get(Market, ("0xabc", "polymarket"))
        assert market.price_1_day_ago == 40
        assert market.price_change_1_day == 35
        assert market.price_change_1_week is None


@pytest.mark.asyncio
async def test_one_failing_source_does_not_block_the_others(session_factory, reference_time):
    adapters = [
        FakeAdapter("kalshi", [_normalized("K1", 10), _normalized("K2", 20)]),
        FakeAdapter("polymarket", error=RuntimeError("gamma is down")),
        FakeAdapter("manifold", [_normalized("M1", 30, source="manifold")]),
    ]

    summary = await _orchestrator(session_factory, adapters, Clock(reference_time)).refresh_all()

    assert summary.result("kalshi").added == 2
    assert summary.result("manifold").added == 1
    assert summary.result("polymarket").errors == 1
    assert summary.result("polymarket").added == 0
    assert summary.total_added == 3
    assert summary.total_errors == 1
    assert summary.timestamp == reference_time


@pytest.mark.asyncio
async def test_all_sources_failing_reports_errors_only(session_factory, reference_time):
    adapters = [
        FakeAdapter(source, error=RuntimeError(f"{source} down"))
        for source in ("kalshi", "polymarket", "manifold")
    ]

    summary = await _orchestrator(session_factory, adapters, Clock(reference_time)).refresh_all()

    assert summary.total_updated == 0
    assert summary.total_added == 0
    assert summary.total_errors == 3
    assert summary.to_dict()["sources"]["kalshi"] == {
        "source": "kalshi",
        "updated": 0,
        "added": 0,
        "errors": 1,
    }


@pytest.mark.asyncio
async def test_invalid_markets_are_counted_without_failing_the_chunk(session_factory, reference_time):
    adapter = FakeAdapter(
        "kalshi",
        [
            _normalized("OK", 55),
            _normalized("BAD-PRICE", 150),
            _normalized("NO-NAME", 20, market_name=""),
            _normalized("OK", 60),
        ],
    )

    summary = await _orchestrator(session_factory, [adapter], Clock(reference_time)).refresh_all()

    assert summary.result("kalshi").added == 1
    assert summary.result("kalshi").errors == 2
    with session_factory() as session:
        assert session.get(Market, ("OK", "kalshi")).current_price == 60
        assert session.get(Market, ("BAD-PRICE", "kalshi")) is None


class FlakyChunkOrchestrator(RefreshOrchestrator):
    def __init__(self, *args, failing_chunk, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing_chunk = failing_chunk
        self.chunks_seen = 0

    def _process_chunk(self, source, chunk, reference_time):
        self.chunks_seen += 1
        if self.chunks_seen == self.failing_chunk:
            raise RuntimeError("write failed")
        return super()._process_chunk(source, chunk, reference_time)


@pytest.mark.asyncio
async def test_chunk_failure_counts_its_markets_and_continues(session_factory, reference_time):
    adapter = FakeAdapter("manifold", [_normalized(f"m{i}", 50, source="manifold") for i in range(5)])
    orchestrator = FlakyChunkOrchestrator(
        adapters=[adapter],
        session_factory=session_factory,
        clock=Clock(reference_time),
        lock=asyncio.Lock(),
        chunk_size=2,
        failing_chunk=2,
    )

    summary = await orchestrator.refresh_all()

    assert orchestrator.chunks_seen == 3
    assert summary.result("manifold").added == 3
    assert summary.result("manifold").errors == 2
    with session_factory() as session:
        stored = session.execute(select(Market.market_id).order_by(Market.market_id)).scalars().all()
    assert stored == ["m0", "m1", "m4"]


@pytest.mark.asyncio
async def test_overlapping_refresh_is_rejected(session_factory, reference_time):
    lock = asyncio.Lock()
    adapter = FakeAdapter("kalshi", [_normalized("FED", 40)])
    orchestrator = RefreshOrchestrator(
        adapters=[adapter], session_factory=session_factory, clock=Clock(reference_time), lock=lock
    )

    async with lock:
        with pytest.raises(RefreshInProgressError):
            await orchestrator.refresh_all()

    assert adapter.calls == 0
    summary = await orchestrator.refresh_all()
    assert summary.total_added == 1


@pytest.mark.asyncio
async def test_markets_leaving_the_feed_stop_ranking(session_factory, reference_time):
    adapter = FakeAdapter("kalshi")
    clock = Clock(reference_time)
    orchestrator = _orchestrator(session_factory, [adapter], clock)

    for day, gone_price in enumerate((40, 70, 99)):
        adapter.markets = [_normalized("GONE", gone_price), _normalized("LIVE", 50)]
        clock.now = reference_time + timedelta(days=day)
        await orchestrator.refresh_all()

    with session_factory() as session:
        assert session.get(Market, ("GONE", "kalshi")).price_change_1_day == 59

    adapter.markets = [_normalized("LIVE", 50)]
    clock.now = reference_time + timedelta(days=3)
    await orchestrator.refresh_all()

    with session_factory() as session:
        gone = session.get(Market, ("GONE", "kalshi"))
        assert gone.price_change_1_day is None
        assert gone.price_1_day_ago is None
        assert gone.current_price == 99

        movers = MarketService(session).top_movers(Period.DAY)
        assert movers.fallback_mode is False
        assert [market.market_id for market in movers.markets] == ["LIVE"]


@pytest.mark.asyncio
async def test_failed_fetch_keeps_stored_changes(session_factory, reference_time):
    adapter = FakeAdapter("manifold")
    clock = Clock(reference_time)
    orchestrator = _orchestrator(session_factory, [adapter], clock)

    for day, price in enumerate((40, 70, 75)):
        adapter.markets = [_normalized("m1", price, source="manifold")]
        clock.now = reference_time + timedelta(days=day)
        await orchestrator.refresh_all()

    adapter.error = RuntimeError("manifold down")
    clock.now = reference_time + timedelta(days=3)
    summary = await orchestrator.refresh_all()

    assert summary.result("manifold").errors == 1
    with session_factory() as session:
        assert session.get(Market, ("m1", "manifold")).price_change_1_day == 35


class SlowChunkOrchestrator(RefreshOrchestrator):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chunk_threads: set[int] = set()

    def _process_chunk(self, source, chunk, reference_time):
        self.chunk_threads.add(threading.get_ident())
        time.sleep(0.05)
        return super()._process_chunk(source, chunk, reference_time)


@pytest.mark.asyncio
async def test_store_writes_do_not_block_the_event_loop(session_factory, reference_time):
    adapter = FakeAdapter("kalshi", [_normalized(f"K{i}", 50) for i in range(8)])
    orchestrator = SlowChunkOrchestrator(
        adapters=[adapter],
        session_factory=session_factory,
        clock=Clock(reference_time),
        lock=asyncio.Lock(),
        chunk_size=2,
    )
    ticks = 0
    done = asyncio.Event()

    async def ticker():
        nonlocal ticks
        while not done.is_set():
            ticks += 1
            await asyncio.sleep(0.01)

    ticking = asyncio.create_task(ticker())
    summary = await orchestrator.refresh_all()
    done.set()
    await ticking

    assert summary.result("kalshi").added == 8
    assert threading.get_ident() not in orchestrator.chunk_threads
    # Four chunks of 50ms each leave room for many ticks when the loop stays free.
    assert ticks >= 5
