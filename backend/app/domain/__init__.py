"""Domain models representing normalized market data."""

from .models import MarketSource, NormalizedMarket, Period, PriceChanges, round_half_up

__all__ = [
    "MarketSource",
    "NormalizedMarket",
    "Period",
    "PriceChanges",
    "round_half_up",
]
