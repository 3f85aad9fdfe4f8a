"""Manifold Markets public API adapter (no authentication required)."""

from __future__ import annotations

from typing import Any

from loguru import logger

from app.core.config import settings
from app.domain import MarketSource, NormalizedMarket

from .base import SourceAdapter, cap_reached, first_text
from .filters import should_exclude
from .http import RetryingClient
from .normalize import as_list, parse_epoch_ms, price_from_probability, text_or_none

PAGE_SIZE = 500
MAX_MARKETS = 10_000
DEFAULT_GROUP_NAME = "General"


def _rich_text(node: Any) -> list[str]:
    if isinstance(node, dict):
        if node.get("type") == "text" and isinstance(node.get("text"), str):
            return [node["text"]]
        parts: list[str] = []
        for child in node.get("content") or []:
            parts.extend(_rich_text(child))
        if node.get("type") in {"paragraph", "heading", "listItem"} and parts:
            parts.append("\n")
        return parts
    if isinstance(node, list):
        parts = []
        for child in node:
            parts.extend(_rich_text(child))
        return parts
    return []


def decode_description(raw_market: dict[str, Any]) -> str:
    """Plain text from ``textDescription``, a string, or a rich-text document."""

    text = first_text(raw_market, "textDescription")
    if text:
        return text
    description = raw_market.get("description")
    if isinstance(description, str):
        return description
    if isinstance(description, dict):
        return "".join(_rich_text(description)).strip()
    return ""


def is_open_binary(raw_market: dict[str, Any]) -> bool:
    return (
        not raw_market.get("isResolved")
        and raw_market.get("outcomeType") == "BINARY"
        and raw_market.get("probability") is not None
    )


def primary_group_name(raw_market: dict[str, Any], group_names: dict[str, str]) -> str:
    slugs = [slug for slug in as_list(raw_market.get("groupSlugs")) if isinstance(slug, str)]
    if not slugs:
        return DEFAULT_GROUP_NAME
    for slug in slugs:
        if slug in group_names:
            return group_names[slug]
    return slugs[0]


def normalize_market(
    raw_market: dict[str, Any], group_names: dict[str, str]
) -> NormalizedMarket | None:
    market_id = raw_market.get("id")
    if not market_id:
        return None

    question = first_text(raw_market, "question")
    description = decode_description(raw_market)
    group_name = primary_group_name(raw_market, group_names)
    if should_exclude(question, description, group_name):
        return None

    url = first_text(raw_market, "url") or f"https://manifold.markets/market/{market_id}"
    return NormalizedMarket(
        market_id=str(market_id),
        source=MarketSource.MANIFOLD,
        market_name=question or str(market_id),
        event_name=group_name,
        market_url=url,
        event_url=None,
        description=text_or_none(description),
        creation_date=parse_epoch_ms(raw_market.get("createdTime")),
        resolution_date=parse_epoch_ms(raw_market.get("closeTime")),
        current_price=price_from_probability(raw_market.get("probability")),
        category=text_or_none(group_name),
    )


class ManifoldAdapter(SourceAdapter):
    source = MarketSource.MANIFOLD

    def __init__(
        self,
        *,
        client: RetryingClient | None = None,
        metadata_concurrency: int | None = None,
    ) -> None:
        super().__init__(client=client, metadata_concurrency=metadata_concurrency)
        self.base_url = str(settings.manifold_base_url)

    async def _fetch_raw_markets(self, client: RetryingClient) -> list[dict[str, Any]]:
        raw_count = 0
        kept: list[dict[str, Any]] = []
        before: str | None = None
        while True:
            params: dict[str, Any] = {"limit": PAGE_SIZE}
            if before:
                params["before"] = before
            payload = await client.get_json("/v0/markets", params=params)
            page = [item for item in as_list(payload) if isinstance(item, dict)]
            if not page:
                break

            raw_count += len(page)
            kept.extend(market for market in page if is_open_binary(market))
            before = page[-1].get("id")

            if cap_reached(self.source, raw_count, MAX_MARKETS, "market"):
                break
            if len(page) < PAGE_SIZE or not before:
                break
        return kept

    async def _fetch_group_names(
        self, client: RetryingClient, slugs: list[str]
    ) -> dict[str, str]:
        async def fetch_one(slug: str) -> str | None:
            payload = await client.get_json(f"/v0/group/{slug}")
            if isinstance(payload, dict):
                return text_or_none(payload.get("name"))
            return None

        return await self._fetch_settled(slugs, fetch_one)

    async def _fetch(self, client: RetryingClient) -> list[NormalizedMarket]:
        raw_markets = await self._fetch_raw_markets(client)
        logger.info("Manifold: fetched {} active binary markets", len(raw_markets))

        slugs = [
            slug
            for raw_market in raw_markets
            for slug in as_list(raw_market.get("groupSlugs"))
            if isinstance(slug, str)
        ]
        group_names = await self._fetch_group_names(client, slugs)
        logger.info("Manifold: fetched {} group details", len(group_names))

        normalized: list[NormalizedMarket] = []
        for raw_market in raw_markets:
            market = normalize_market(raw_market, group_names)
            if market is not None:
                normalized.append(market)
        return normalized
