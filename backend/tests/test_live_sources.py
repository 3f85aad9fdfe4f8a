from __future__ import annotations

import httpx
import pytest

from app.core.config import settings
from ingestion import kalshi, manifold, polymarket
from ingestion.http import RetryingClient, SourceFetchError


async def _get(source: str, base_url: str, path: str, params: dict[str, object]):
    async with RetryingClient(source, base_url=base_url, max_attempts=1) as client:
        try:
            return await client.get_json(path, params=params)
        except (httpx.HTTPError, SourceFetchError) as exc:
            pytest.skip(f"{source} API unavailable: {exc}")


@pytest.mark.network
@pytest.mark.asyncio
async def test_manifold_live_page_normalizes():
    payload = await _get("manifold", str(settings.manifold_base_url), "/v0/markets", {"limit": 20})

    assert isinstance(payload, list) and payload, "Manifold API returned no markets"
    for raw_market in payload:
        assert raw_market.get("id"), "market payload missing identifier"
        if manifold.is_open_binary(raw_market):
            market = manifold.normalize_market(raw_market, {})
            if market is not None:
                assert 0 <= market.current_price <= 100


@pytest.mark.network
@pytest.mark.asyncio
async def test_polymarket_live_events_normalize():
    payload = await _get(
        "polymarket",
        str(settings.polymarket_base_url),
        "/events",
        {"limit": 5, "offset": 0, "active": "true", "closed": "false"},
    )

    assert isinstance(payload, list), "Polymarket API returned an unexpected payload"
    for raw_event in payload:
        for market in polymarket.normalize_event(raw_event):
            assert market.market_url.startswith("https://polymarket.com/event/")
            assert 0 <= market.current_price <= 100


@pytest.mark.network
@pytest.mark.asyncio
async def test_kalshi_live_markets_normalize():
    payload = await _get(
        "kalshi", str(settings.kalshi_base_url), "/markets", {"limit": 5, "status": "open"}
    )

    assert isinstance(payload, dict) and "markets" in payload
    for raw_market in payload["markets"]:
        market = kalshi.normalize_market(raw_market)
        if market is not None:
            assert market.market_url == kalshi.market_url(market.market_id)
