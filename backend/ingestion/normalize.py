from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from app.domain import round_half_up

DEFAULT_PRICE = 50


def as_list(value: Any) -> list[Any]:
    """Return value as a list when possible, decoding JSON strings."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, TypeError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_epoch_ms(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def clamp_price(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def price_from_cents(value: Any) -> int:
    """Prices already quoted as 0-100 cents."""
    cents = _parse_float(value)
    if cents is None:
        return DEFAULT_PRICE
    return clamp_price(cents)


def price_from_probability(value: Any) -> int:
    """Prices quoted as a 0-1 probability or decimal string."""
    probability = _parse_float(value)
    if probability is None:
        return DEFAULT_PRICE
    return clamp_price(probability * 100)


def text_or_none(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None
