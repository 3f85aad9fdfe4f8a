"""Repository abstractions for database interactions."""

from .market_repository import MarketRepository
from .price_history_repository import PriceHistoryRepository, SnapshotInput
from .types import BatchResult, ItemOutcome, ItemStatus

__all__ = [
    "MarketRepository",
    "PriceHistoryRepository",
    "SnapshotInput",
    "BatchResult",
    "ItemOutcome",
    "ItemStatus",
]
