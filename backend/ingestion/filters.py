"""Keyword and pattern rules deciding which markets stay out of the movers list."""

from __future__ import annotations

import re

SPORTS_KEYWORDS: tuple[str, ...] = (
    "NBA",
    "NFL",
    "MLB",
    "NHL",
    "FIFA",
    "soccer",
    "football",
    "basketball",
    "baseball",
    "hockey",
    "tennis",
    "golf",
    "boxing",
    "UFC",
    "MMA",
    "cricket",
    "rugby",
    "Olympics",
    "Super Bowl",
    "World Series",
    "Stanley Cup",
    "points scored",
    "touchdowns",
    "home runs",
    "goals scored",
    "assists",
    "rebounds",
    "Australian Open",
    "French Open",
    "Wimbledon",
    "US Open tennis",
    "Grand Slam",
    "aces at the",
    "March Madness",
    "World Cup",
    "Premier League",
    "La Liga",
    "Serie A",
    "Bundesliga",
    "Champions League",
)

# Player props, e.g. "yes LeBron James: 10+" or "Over 229.5 points".
SPORTS_PROP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"yes\s+[A-Z][a-z]+\s+[A-Z][a-z]+:\s*\d+\+", re.IGNORECASE),
    re.compile(r"\d+\+,\s*yes\s+[A-Z]", re.IGNORECASE),
    re.compile(r"Over\s+\d+\.?\d*\s+points", re.IGNORECASE),
    re.compile(r"Under\s+\d+\.?\d*\s+points", re.IGNORECASE),
)

# City fragments that show up almost exclusively in NBA prop markets.
NBA_TEAM_INDICATORS: tuple[str, ...] = (
    "Los Angeles L",
    "Los Angeles C",
    "Golden State",
    "New England",
    "San Antonio",
    "New Orleans",
    "Oklahoma City",
)

PRICE_THRESHOLD_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(BTC|Bitcoin)\s+(above|below|reach|hit|at)\s+\$[\d,]+", re.IGNORECASE),
    re.compile(r"\bWill\s+(ETH|Ethereum)\s+reach\s+\$[\d,]+", re.IGNORECASE),
    re.compile(r"\bWill\s+(BTC|Bitcoin)\s+reach\s+\$[\d,]+", re.IGNORECASE),
    re.compile(r"\b(ETH|Ethereum)\s+(above|below|reach|hit|at)\s+\$[\d,]+", re.IGNORECASE),
    re.compile(r"\bprice\s+(above|below|reach)\s+\$[\d,]+", re.IGNORECASE),
)

ALLOWED_TOPICS: tuple[str, ...] = (
    "politics",
    "election",
    "elections",
    "regulation",
    "technology",
    "AI",
    "artificial intelligence",
    "companies",
    "company",
)


def _keyword_matcher(keywords: tuple[str, ...]) -> re.Pattern[str]:
    """Acronyms match as whole words; everything else as a plain substring."""

    parts = [
        rf"\b{re.escape(keyword)}\b" if keyword.isupper() else re.escape(keyword)
        for keyword in keywords
    ]
    return re.compile("|".join(parts), re.IGNORECASE)


_ALLOWED_TOPIC_RE = _keyword_matcher(ALLOWED_TOPICS)
_SPORTS_KEYWORD_RE = _keyword_matcher(SPORTS_KEYWORDS)
_NBA_TEAM_RE = re.compile("|".join(re.escape(city) for city in NBA_TEAM_INDICATORS), re.IGNORECASE)


def is_allowed_topic(text: str) -> bool:
    return _ALLOWED_TOPIC_RE.search(text) is not None


def contains_sports_keyword(text: str) -> bool:
    return _SPORTS_KEYWORD_RE.search(text) is not None


def matches_sports_prop_pattern(text: str) -> bool:
    return any(pattern.search(text) for pattern in SPORTS_PROP_PATTERNS)


def contains_nba_team_indicator(text: str) -> bool:
    return _NBA_TEAM_RE.search(text) is not None


def matches_price_threshold_pattern(text: str) -> bool:
    return any(pattern.search(text) for pattern in PRICE_THRESHOLD_PATTERNS)


def should_exclude(title: str | None, description: str | None, category: str | None = None) -> bool:
    """Return True when a market should be kept out of the movers listing.

    An allowed topic (politics, elections, AI, ...) always wins, even when the
    text also mentions sports or a price threshold.
    """

    text = " ".join((title or "", description or "", category or ""))

    if is_allowed_topic(text):
        return False
    if contains_sports_keyword(text):
        return True
    if matches_sports_prop_pattern(text):
        return True
    if contains_nba_team_indicator(text):
        return True
    if matches_price_threshold_pattern(text):
        return True
    return False
