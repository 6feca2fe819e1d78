from datetime import datetime, timedelta, timezone

import pytest

from sports_feed_monitor.config import RelevanceConfig
from sports_feed_monitor.domain import NormalizedItem
from sports_feed_monitor.scorer import RelevanceScorer, recency_bonus

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _item(
    title: str,
    description: str = "Nothing else of note here today",
    source: str = "Local Desk",
    age: timedelta = timedelta(days=2),
) -> NormalizedItem:
    return NormalizedItem(
        title=title,
        description=description,
        link="https://example.com/a",
        published_at=NOW - age,
        source=source,
        category="general",
    )


def test_score_counts_each_distinct_keyword_once() -> None:
    scorer = RelevanceScorer()
    assert scorer.score(_item("Match match MATCH match"), NOW) == 20
    assert scorer.score(_item("Transfer and injury", "Player in a new team"), NOW) == 60


def test_score_tiers_are_weighted() -> None:
    scorer = RelevanceScorer()
    assert scorer.score(_item("Odds"), NOW) == 20
    assert scorer.score(_item("League"), NOW) == 10
    assert scorer.score(_item("Report"), NOW) == 5


@pytest.mark.parametrize(
    ("age", "bonus"),
    [
        (timedelta(minutes=30), 15),
        (timedelta(hours=3), 10),
        (timedelta(hours=12), 5),
        (timedelta(hours=24), 0),
    ],
)
def test_recency_bonus(age: timedelta, bonus: int) -> None:
    assert recency_bonus(NOW - age, NOW) == bonus


def test_trusted_source_bonus_uses_substring_match() -> None:
    scorer = RelevanceScorer()
    assert scorer.score(_item("Odds", source="BBC Sport"), NOW) == 30
    assert scorer.score(_item("Odds", source="Sky Sports"), NOW) == 30
    assert scorer.score(_item("Odds", source="Weather Channel"), NOW) == 20


def test_score_is_clamped_to_100() -> None:
    item = _item(
        "Transfer injury match prediction",
        "Odds, betting and analysis for the team and player",
        source="ESPN",
        age=timedelta(minutes=5),
    )
    assert RelevanceScorer().score(item, NOW) == 100


def test_score_is_pure() -> None:
    scorer = RelevanceScorer()
    item = _item("Transfer update", "Team news ahead of the cup tie", source="Goal.com")
    first = scorer.score(item, NOW)
    scorer.score(_item("Betting odds"), NOW)
    assert scorer.score(item, NOW) == first
    assert RelevanceScorer().score(item, NOW) == first


def test_explain_lists_matches() -> None:
    breakdown = RelevanceScorer().explain(_item("Transfer update", "Team news", age=timedelta(hours=2)), NOW)
    assert breakdown.high_matches == ("transfer",)
    assert breakdown.medium_matches == ("team",)
    assert breakdown.low_matches == ("news", "update")
    assert breakdown.recency_bonus == 10
    assert breakdown.trusted_source is False
    assert breakdown.score == 50


def test_custom_relevance_config() -> None:
    config = RelevanceConfig(
        high=("derby",),
        medium=(),
        low=(),
        trusted_sources=(),
        spam_terms=(),
        high_weight=70,
    )
    assert RelevanceScorer(config).score(_item("North London derby"), NOW) == 70


def test_rank_orders_by_score() -> None:
    low = _item("Nothing to see")
    high = _item("Transfer odds")
    ranked = RelevanceScorer().rank([low, high], NOW)
    assert [pair[0] for pair in ranked] == [high, low]
    assert [pair[1] for pair in ranked] == [40, 0]
