"""Polymarket Gamma API adapter.

Markets are listed through their parent events so each market carries the
event title and slug used to build links.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from app.core.config import settings
from app.domain import MarketSource, NormalizedMarket

from .base import SourceAdapter, cap_reached, first_text
from .filters import should_exclude
from .http import RetryingClient
from .normalize import DEFAULT_PRICE, as_list, parse_datetime, price_from_probability, text_or_none

PAGE_SIZE = 100
MAX_EVENTS = 5_000


def event_url(slug: str) -> str:
    return f"https://polymarket.com/event/{slug}"


def yes_price(raw_market: dict[str, Any]) -> int:
    """Price of the "Yes" outcome, or of the first outcome when there is none."""

    outcomes = as_list(raw_market.get("outcomes"))
    prices = as_list(raw_market.get("outcomePrices"))
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, str) and outcome.lower() == "yes":
            if index < len(prices) and prices[index] not in (None, ""):
                return price_from_probability(prices[index])
            break
    if prices:
        return price_from_probability(prices[0])
    return DEFAULT_PRICE


def decode_description(raw_market: dict[str, Any], raw_event: dict[str, Any]) -> str:
    return first_text(raw_market, "description") or first_text(raw_event, "description")


def is_tradeable(raw_market: dict[str, Any]) -> bool:
    return bool(raw_market.get("active")) and not raw_market.get("closed") and bool(
        raw_market.get("enableOrderBook")
    )


def normalize_event(raw_event: dict[str, Any]) -> list[NormalizedMarket]:
    """Map the tradeable, non-excluded markets nested under one event."""

    slug = str(raw_event.get("slug") or "")
    event_title = first_text(raw_event, "title")
    normalized: list[NormalizedMarket] = []
    for raw_market in as_list(raw_event.get("markets")):
        if not isinstance(raw_market, dict) or not is_tradeable(raw_market):
            continue
        market_id = raw_market.get("conditionId") or raw_market.get("id")
        if not market_id:
            continue

        question = first_text(raw_market, "question")
        description = decode_description(raw_market, raw_event)
        category = first_text(raw_market, "category") or first_text(raw_event, "category")
        if should_exclude(question, description, category):
            continue

        link = event_url(slug or str(raw_market.get("slug") or market_id))
        normalized.append(
            NormalizedMarket(
                market_id=str(market_id),
                source=MarketSource.POLYMARKET,
                market_name=question or str(market_id),
                event_name=event_title or question or str(market_id),
                market_url=link,
                event_url=link,
                description=text_or_none(description),
                creation_date=parse_datetime(raw_market.get("createdAt")),
                resolution_date=parse_datetime(raw_market.get("endDate")),
                current_price=yes_price(raw_market),
                category=text_or_none(category),
            )
        )
    return normalized


class PolymarketAdapter(SourceAdapter):
    source = MarketSource.POLYMARKET

    def __init__(
        self,
        *,
        client: RetryingClient | None = None,
        metadata_concurrency: int | None = None,
    ) -> None:
        super().__init__(client=client, metadata_concurrency=metadata_concurrency)
        self.base_url = str(settings.polymarket_base_url)

    async def _fetch_events(self, client: RetryingClient) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        offset = 0
        while True:
            params = {
                "limit": PAGE_SIZE,
                "offset": offset,
                "active": "true",
                "closed": "false",
            }
            payload = await client.get_json("/events", params=params)
            page = [item for item in as_list(payload) if isinstance(item, dict)]
            if not page:
                break
            events.extend(page)
            offset += PAGE_SIZE
            if cap_reached(self.source, len(events), MAX_EVENTS, "event"):
                break
        return events

    async def _fetch(self, client: RetryingClient) -> list[NormalizedMarket]:
        events = await self._fetch_events(client)
        logger.info("Polymarket: fetched {} events", len(events))
        normalized: list[NormalizedMarket] = []
        for raw_event in events:
            normalized.extend(normalize_event(raw_event))
        return normalized
