from __future__ import annotations

import pytest

from ingestion.filters import should_exclude


@pytest.mark.parametrize(
    ("title", "description"),
    [
        ("NBA Finals Winner", "Who will win the NBA finals"),
        ("Super Bowl Champion", "NFL championship game"),
        ("World Series Winner", "MLB playoffs"),
        ("Stanley Cup Winner", "NHL playoffs"),
        ("FIFA World Cup Winner", "International soccer tournament"),
        ("Champions League Winner", "European soccer competition"),
        ("Monday Night Football", "Weekly football game predictions"),
        ("March Madness Winner", "College basketball tournament"),
        ("Home Run Leader", "Baseball season leader"),
        ("Wimbledon Winner", "Tennis grand slam"),
        ("Masters Winner", "Golf tournament"),
        ("Heavyweight Championship", "Boxing match"),
        ("UFC 300 Main Event", "Mixed martial arts"),
        ("MMA Championship", "Mixed martial arts fighting"),
        ("Cricket World Cup", "International cricket tournament"),
        ("2028 Olympics Host", "Olympic games"),
    ],
)
def test_sports_markets_are_excluded(title, description):
    assert should_exclude(title, description, "") is True


@pytest.mark.parametrize(
    ("title", "description"),
    [
        ("BTC above $100,000", "Will Bitcoin cross this threshold"),
        ("Will Bitcoin reach $150,000", "Price prediction for BTC"),
        ("Will ETH reach $10,000", "Ethereum price prediction"),
        ("Ethereum above $5000", "Price threshold market"),
        ("Token price below $50", "Crypto price prediction"),
    ],
)
def test_price_threshold_markets_are_excluded(title, description):
    assert should_exclude(title, description, "") is True


@pytest.mark.parametrize(
    ("title", "description", "category"),
    [
        ("2024 Presidential Election", "Will the incumbent win?", "politics"),
        ("Senate Race Results", "Which party wins the election", ""),
        ("Crypto Regulation", "Will new regulation pass", ""),
        ("Tech IPO Success", "Technology company goes public", ""),
        ("AI Breakthrough", "Artificial intelligence milestone", ""),
        ("Apple Revenue Growth", "Company earnings prediction", ""),
        ("Election Results", "Political election outcome", None),
    ],
)
def test_allowed_topics_are_kept(title, description, category):
    assert should_exclude(title, description, category) is False


def test_allowed_topic_overrides_sports_and_price_rules():
    assert should_exclude("NBA commissioner election", "League politics", None) is False
    assert should_exclude("Will BTC reach $200000", "Driven by regulation", "") is False


def test_ai_only_matches_as_a_whole_word():
    # "Main" contains the letters "ai" but is not an AI topic.
    assert should_exclude("UFC Main Card", "", "") is True
    assert should_exclude("Will an AI model win gold?", "", "") is False


def test_acronyms_need_word_boundaries():
    assert should_exclude("Conflict escalation in the region", "", "") is False
    assert should_exclude("Who wins the nba title", "", "") is True


@pytest.mark.parametrize(
    "title",
    [
        "yes LeBron James: 10+",
        "25+, yes Stephen",
        "Over 229.5 points",
        "under 45 points in the game",
    ],
)
def test_prop_bet_patterns_are_excluded(title):
    assert should_exclude(title, "", "") is True


def test_nba_team_city_indicators_are_excluded():
    assert should_exclude("Golden State vs Boston: winner", "", "") is True
    assert should_exclude("oklahoma city thunder total", "", "") is True


def test_general_and_empty_markets_are_kept():
    assert should_exclude("Climate Agreement", "Will countries reach agreement", "") is False
    assert should_exclude("", "", "") is False
    assert should_exclude("General Market", "Some description") is False


def test_case_insensitive_and_pure():
    assert should_exclude("nba finals", "basketball championship", "") is True
    assert should_exclude("SOCCER match", "FOOTBALL game", "") is True
    first = should_exclude("Stanley Cup Winner", "NHL playoffs", "")
    assert all(should_exclude("Stanley Cup Winner", "NHL playoffs", "") == first for _ in range(3))
