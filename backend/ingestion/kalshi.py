"""Kalshi trade API adapter.

API documentation: https://docs.kalshi.com/api-reference/market/get-markets
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from app.core.config import settings
from app.domain import MarketSource, NormalizedMarket

from .base import SourceAdapter, cap_reached, first_text
from .filters import should_exclude
from .http import RetryingClient
from .normalize import parse_datetime, price_from_cents, text_or_none

PAGE_SIZE = 200
MAX_MARKETS = 10_000
SPORTS_TICKER_FRAGMENTS = ("SPORT", "NBA", "NFL", "MLB", "NHL", "SOCCER", "TENNIS", "GOLF")


def market_url(ticker: str) -> str:
    return f"https://kalshi.com/markets/{ticker}"


def event_url(event_ticker: str) -> str:
    return f"https://kalshi.com/events/{event_ticker}"


def is_sports_ticker(ticker: str) -> bool:
    upper = ticker.upper()
    return any(fragment in upper for fragment in SPORTS_TICKER_FRAGMENTS)


def decode_description(raw_market: dict[str, Any]) -> str:
    return first_text(raw_market, "rules_primary", "rules_secondary")


def normalize_market(
    raw_market: dict[str, Any], event_titles: dict[str, str] | None = None
) -> NormalizedMarket | None:
    """Map one Kalshi market payload, or return None when it is filtered out."""

    ticker = raw_market.get("ticker")
    if not ticker:
        return None
    ticker = str(ticker)
    if is_sports_ticker(ticker):
        return None

    title = first_text(raw_market, "title")
    description = decode_description(raw_market)
    category = first_text(raw_market, "category")
    if should_exclude(title, description, category):
        return None

    event_ticker = str(raw_market.get("event_ticker") or ticker)
    event_name = (event_titles or {}).get(event_ticker) or event_ticker

    return NormalizedMarket(
        market_id=ticker,
        source=MarketSource.KALSHI,
        market_name=title or ticker,
        event_name=event_name,
        market_url=market_url(ticker),
        event_url=event_url(event_ticker),
        description=text_or_none(description),
        creation_date=parse_datetime(raw_market.get("created_time")),
        resolution_date=parse_datetime(raw_market.get("expiration_time")),
        current_price=price_from_cents(raw_market.get("last_price")),
        category=text_or_none(category),
    )


class KalshiAdapter(SourceAdapter):
    source = MarketSource.KALSHI

    def __init__(
        self,
        *,
        client: RetryingClient | None = None,
        api_key: str | None = None,
        fetch_event_details: bool | None = None,
        metadata_concurrency: int | None = None,
    ) -> None:
        super().__init__(client=client, metadata_concurrency=metadata_concurrency)
        self.base_url = str(settings.kalshi_base_url)
        self.api_key = api_key if api_key is not None else settings.kalshi_api_key
        self.fetch_event_details = (
            settings.kalshi_fetch_event_details
            if fetch_event_details is None
            else fetch_event_details
        )

    def _headers(self) -> dict[str, str]:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    async def _fetch_raw_markets(self, client: RetryingClient) -> list[dict[str, Any]]:
        raw_markets: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"limit": PAGE_SIZE, "status": "open"}
            if cursor:
                params["cursor"] = cursor
            payload = await client.get_json("/markets", params=params)
            page = payload.get("markets") if isinstance(payload, dict) else None
            page = [item for item in page or [] if isinstance(item, dict)]
            raw_markets.extend(page)

            cursor = payload.get("cursor") if isinstance(payload, dict) else None
            if cap_reached(self.source, len(raw_markets), MAX_MARKETS, "market"):
                break
            if not cursor or not page:
                break
        return raw_markets

    async def _fetch_event_titles(
        self, client: RetryingClient, event_tickers: list[str]
    ) -> dict[str, str]:
        async def fetch_one(event_ticker: str) -> str | None:
            payload = await client.get_json(f"/events/{event_ticker}")
            event = payload.get("event") if isinstance(payload, dict) else None
            if isinstance(event, dict):
                return text_or_none(event.get("title"))
            return None

        return await self._fetch_settled(event_tickers, fetch_one)

    async def _fetch(self, client: RetryingClient) -> list[NormalizedMarket]:
        raw_markets = await self._fetch_raw_markets(client)
        logger.info("Kalshi: fetched {} raw markets", len(raw_markets))

        event_titles: dict[str, str] = {}
        if self.fetch_event_details:
            tickers = [
                str(raw["event_ticker"])
                for raw in raw_markets
                if raw.get("event_ticker") and not is_sports_ticker(str(raw.get("ticker", "")))
            ]
            event_titles = await self._fetch_event_titles(client, tickers)
            logger.info("Kalshi: resolved {} event titles", len(event_titles))

        normalized: list[NormalizedMarket] = []
        for raw_market in raw_markets:
            market = normalize_market(raw_market, event_titles)
            if market is not None:
                normalized.append(market)
        return normalized
