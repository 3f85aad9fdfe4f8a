"""Shared repository result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ItemStatus(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    INSERTED = "inserted"
    FAILED = "failed"


@dataclass(slots=True)
class ItemOutcome:
    """Result of writing a single record inside a bulk operation."""

    key: str
    status: ItemStatus
    reason: str | None = None


@dataclass(slots=True)
class BatchResult:
    """Per-item outcomes of a bulk write that does not abort on bad records."""

    outcomes: list[ItemOutcome] = field(default_factory=list)

    def record(self, key: str, status: ItemStatus, reason: str | None = None) -> None:
        self.outcomes.append(ItemOutcome(key=key, status=status, reason=reason))

    def count(self, status: ItemStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def added(self) -> int:
        return self.count(ItemStatus.ADDED)

    @property
    def updated(self) -> int:
        return self.count(ItemStatus.UPDATED)

    @property
    def failures(self) -> list[ItemOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == ItemStatus.FAILED]


__all__ = ["BatchResult", "ItemOutcome", "ItemStatus"]
