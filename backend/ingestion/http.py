"""Async HTTP access to upstream market APIs with bounded retries."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger

from app.core.config import settings

RETRYABLE_STATUS_CODES = frozenset({429})


class SourceFetchError(RuntimeError):
    """Raised when an upstream request cannot be completed."""

    def __init__(self, source: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


def backoff_delay_ms(
    attempt: int,
    *,
    base_ms: float = 1000.0,
    max_ms: float = 30000.0,
    jitter: float = 0.3,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before retrying after the 0-indexed ``attempt`` failed."""

    exponential = base_ms * (2**attempt)
    return min(exponential * (1 + rng() * jitter), max_ms)


def _is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


class RetryingClient:
    """Thin wrapper around :class:`httpx.AsyncClient` shared by the source adapters."""

    def __init__(
        self,
        source: str,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_base_ms: float | None = None,
        backoff_max_ms: float | None = None,
        backoff_jitter: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.max_attempts = max_attempts or settings.fetch_max_attempts
        self.backoff_base_ms = backoff_base_ms or settings.fetch_backoff_base_ms
        self.backoff_max_ms = backoff_max_ms or settings.fetch_backoff_max_ms
        self.backoff_jitter = (
            settings.fetch_backoff_jitter if backoff_jitter is None else backoff_jitter
        )
        self._sleep = sleep
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=request_headers,
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )

    def _delay_seconds(self, attempt: int) -> float:
        return (
            backoff_delay_ms(
                attempt,
                base_ms=self.backoff_base_ms,
                max_ms=self.backoff_max_ms,
                jitter=self.backoff_jitter,
            )
            / 1000.0
        )

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        last_error: str = "no attempts made"
        last_status: int | None = None
        for attempt in range(self.max_attempts):
            try:
                response = await self.client.get(path, params=params)
            except httpx.TransportError as exc:
                last_error = f"request to {path} failed: {exc!r}"
                last_status = None
            else:
                if not _is_retryable_status(response.status_code):
                    if response.is_error:
                        raise SourceFetchError(
                            self.source,
                            f"GET {path} returned status {response.status_code}",
                            status_code=response.status_code,
                        )
                    return response.json()
                last_error = f"GET {path} returned status {response.status_code}"
                last_status = response.status_code

            if attempt + 1 >= self.max_attempts:
                break
            delay = self._delay_seconds(attempt)
            logger.warning(
                "{} API {} (attempt {}/{}); retrying in {:.0f}ms",
                self.source,
                last_error,
                attempt + 1,
                self.max_attempts,
                delay * 1000,
            )
            await self._sleep(delay)

        raise SourceFetchError(
            self.source,
            f"giving up after {self.max_attempts} attempts: {last_error}",
            status_code=last_status,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "RetryingClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
