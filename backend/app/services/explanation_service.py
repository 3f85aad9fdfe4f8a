"""On-demand rationale text for ranked market moves. Nothing here is persisted."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from app.domain import Period

from .llm import GeminiTextGenerator, TextGenerator

MAX_EXPLAINED_MARKETS = 20
FALLBACK_EXPLANATION = "Unable to generate explanation at this time."
EMPTY_EXPLANATION = "Unable to generate explanation."


@dataclass(slots=True)
class MarketForExplanation:
    market_id: str
    market_name: str
    current_price: float
    price_change: float
    source: str
    description: str | None = None


@dataclass(slots=True)
class ExplanationResult:
    market_id: str
    explanation: str
    error: str | None = None


def build_prompt(market: MarketForExplanation, period: Period) -> str:
    direction = "increased" if market.price_change >= 0 else "decreased"
    description_line = f"Description: {market.description}\n" if market.description else ""
    return (
        "You are a prediction market analyst. Analyze this market and explain the most "
        "likely cause of the price change.\n\n"
        f"Market: {market.market_name}\n"
        f"Source: {market.source}\n"
        f"{description_line}\n"
        f"The probability has {direction} by {abs(market.price_change):g} percentage points "
        f"over {period.label}.\n"
        f"Current price: {market.current_price:g}% (representing the market's estimated "
        'probability of "Yes")\n\n'
        "Provide a brief, insightful explanation (2-3 sentences) of the most likely real-world "
        "events or factors that caused this price movement. Focus on recent news, events, or "
        "developments that would explain why traders changed their probability estimates.\n\n"
        "Do not mention the price change itself - focus on explaining WHY it happened based on "
        "likely real-world events."
    )


class ExplanationService:
    def __init__(self, generator: TextGenerator | None = None) -> None:
        self._generator = generator or GeminiTextGenerator()

    async def explain(self, market: MarketForExplanation, period: Period) -> ExplanationResult:
        try:
            text = await self._generator.generate(build_prompt(market, period))
        except Exception as exc:
            logger.error("Error generating explanation for market {}: {}", market.market_id, exc)
            return ExplanationResult(
                market_id=market.market_id,
                explanation=FALLBACK_EXPLANATION,
                error=str(exc) or exc.__class__.__name__,
            )
        return ExplanationResult(
            market_id=market.market_id,
            explanation=text.strip() or EMPTY_EXPLANATION,
        )

    async def generate_explanations(
        self, markets: Sequence[MarketForExplanation], period: Period | str
    ) -> list[ExplanationResult]:
        period = Period(period)
        selected = list(markets)[:MAX_EXPLAINED_MARKETS]
        return list(await asyncio.gather(*(self.explain(market, period) for market in selected)))
