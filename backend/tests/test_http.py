from __future__ import annotations

import httpx
import pytest

from ingestion.http import SourceFetchError, backoff_delay_ms


def test_backoff_grows_exponentially_with_bounded_jitter():
    assert backoff_delay_ms(0, rng=lambda: 0.0) == 1000
    assert backoff_delay_ms(1, rng=lambda: 0.0) == 2000
    assert backoff_delay_ms(2, rng=lambda: 0.0) == 4000
    assert backoff_delay_ms(2, rng=lambda: 1.0) == pytest.approx(5200)

    for _ in range(50):
        assert 4000 <= backoff_delay_ms(2) <= 5200


def test_backoff_is_capped():
    assert backoff_delay_ms(10, rng=lambda: 1.0) == 30000
    assert backoff_delay_ms(3, base_ms=10000, max_ms=30000, rng=lambda: 0.5) == 30000


@pytest.mark.asyncio
async def test_get_json_returns_decoded_body(mock_client, recording_sleep):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"markets": []})

    async with mock_client("kalshi", handler) as client:
        payload = await client.get_json("/markets", params={"limit": 5})

    assert payload == {"markets": []}
    assert seen[0].url.params["limit"] == "5"
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_retries_rate_limit_and_server_errors(mock_client, recording_sleep):
    statuses = iter([429, 503])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses, 200)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=[1, 2, 3])

    async with mock_client("polymarket", handler, backoff_jitter=0.0) as client:
        payload = await client.get_json("/events")

    assert payload == [1, 2, 3]
    assert recording_sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(mock_client, recording_sleep):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    async with mock_client("manifold", handler) as client:
        with pytest.raises(SourceFetchError) as excinfo:
            await client.get_json("/v0/markets")

    assert calls == 3
    assert len(recording_sleep.delays) == 2
    assert excinfo.value.status_code == 500
    assert excinfo.value.source == "manifold"


@pytest.mark.asyncio
async def test_retries_transport_errors(mock_client, recording_sleep):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"ok": True})

    async with mock_client("kalshi", handler) as client:
        assert await client.get_json("/markets") == {"ok": True}

    assert calls == 2
    assert len(recording_sleep.delays) == 1


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(mock_client, recording_sleep):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(404, json={"error": "not found"})

    async with mock_client("kalshi", handler) as client:
        with pytest.raises(SourceFetchError) as excinfo:
            await client.get_json("/events/MISSING")

    assert calls == 1
    assert recording_sleep.delays == []
    assert excinfo.value.status_code == 404
