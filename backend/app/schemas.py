from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from app.domain import MarketSource, Period


class MarketBase(BaseModel):
    market_id: str
    source: MarketSource
    market_name: str
    event_name: str
    market_url: str
    event_url: str | None = None
    description: str | None = None
    creation_date: datetime | None = None
    resolution_date: datetime | None = None
    current_price: float
    category: str | None = None


class Market(MarketBase):
    price_1_day_ago: float | None = None
    price_1_week_ago: float | None = None
    price_1_month_ago: float | None = None
    price_change_1_day: int | None = None
    price_change_1_week: int | None = None
    price_change_1_month: int | None = None
    is_excluded: bool = False
    last_updated: datetime

    model_config = {"from_attributes": True}


class MoversList(BaseModel):
    period: Period
    total: int
    fallback_mode: bool = False
    markets: list[Market] = Field(default_factory=list)


class SourceRefreshResult(BaseModel):
    source: MarketSource
    updated: int
    added: int
    errors: int


class RefreshResponse(BaseModel):
    timestamp: datetime
    markets_updated: int
    markets_added: int
    errors: int
    details: dict[str, SourceRefreshResult] = Field(default_factory=dict)


class MarketForExplanation(BaseModel):
    market_id: str
    market_name: str
    description: str | None = None
    current_price: float
    price_change: float
    source: str

    @field_validator("current_price", "price_change", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float:
        return float(value)


class ExplanationRequest(BaseModel):
    markets: list[MarketForExplanation]
    period: Period


class Explanation(BaseModel):
    market_id: str
    explanation: str
    error: str | None = None


class ExplanationList(BaseModel):
    period: Period
    total: int
    explanations: list[Explanation] = Field(default_factory=list)
