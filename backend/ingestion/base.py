"""Shared behaviour for the per-source market adapters."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from loguru import logger

from app.core.config import settings
from app.domain import MarketSource, NormalizedMarket

from .http import RetryingClient

T = TypeVar("T")


class SourceAdapter(ABC):
    """Fetch, normalize and filter the open markets of one upstream source."""

    source: MarketSource
    base_url: str

    def __init__(
        self,
        *,
        client: RetryingClient | None = None,
        metadata_concurrency: int | None = None,
    ) -> None:
        self._client = client
        self.metadata_concurrency = metadata_concurrency or settings.metadata_concurrency

    def _headers(self) -> dict[str, str]:
        return {}

    def _build_client(self) -> RetryingClient:
        return RetryingClient(self.source.value, base_url=self.base_url, headers=self._headers())

    async def fetch_markets(self) -> list[NormalizedMarket]:
        logger.info("Fetching markets from {}...", self.source.value)
        if self._client is not None:
            markets = await self._fetch(self._client)
        else:
            async with self._build_client() as client:
                markets = await self._fetch(client)
        logger.info("{}: returning {} markets after filtering", self.source.value, len(markets))
        return markets

    @abstractmethod
    async def _fetch(self, client: RetryingClient) -> list[NormalizedMarket]:
        """Run pagination, enrichment and normalization with ``client``."""

    async def _fetch_settled(
        self,
        identifiers: Iterable[str],
        fetch_one: Callable[[str], Awaitable[T | None]],
    ) -> dict[str, T]:
        """Look up each unique identifier, a few at a time, keeping only successes.

        A failed lookup is logged and left out of the result so callers can
        fall back to the raw identifier.
        """

        unique = list(dict.fromkeys(identifier for identifier in identifiers if identifier))
        resolved: dict[str, T] = {}
        step = self.metadata_concurrency
        for start in range(0, len(unique), step):
            batch = unique[start : start + step]
            results = await asyncio.gather(
                *(fetch_one(identifier) for identifier in batch), return_exceptions=True
            )
            for identifier, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning(
                        "{}: metadata lookup for {} failed: {}", self.source.value, identifier, result
                    )
                    continue
                if result is not None:
                    resolved[identifier] = result
        return resolved


def cap_reached(source: MarketSource, count: int, cap: int, unit: str) -> bool:
    if count >= cap:
        logger.warning("{}: reached {} limit of {}, stopping pagination", source.value, unit, cap)
        return True
    return False


def first_text(payload: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""
