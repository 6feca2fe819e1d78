from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sports_feed_monitor.config import DEFAULT_RELEVANCE, RelevanceConfig
from sports_feed_monitor.domain import NormalizedItem
from sports_feed_monitor.normalize import contains_term, normalize_text

MAX_SCORE = 100

# (max age in hours, bonus), checked in order.
RECENCY_BONUSES: tuple[tuple[float, int], ...] = ((1.0, 15), (6.0, 10), (24.0, 5))


@dataclass(frozen=True)
class RelevanceBreakdown:
    high_matches: tuple[str, ...]
    medium_matches: tuple[str, ...]
    low_matches: tuple[str, ...]
    recency_bonus: int
    trusted_source: bool
    score: int


def recency_bonus(published_at: datetime, now: datetime) -> int:
    hours_since = (now - published_at).total_seconds() / 3600
    for max_hours, bonus in RECENCY_BONUSES:
        if hours_since < max_hours:
            return bonus
    return 0


def _matches(normalized: str, terms: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(term for term in terms if contains_term(normalized, term)))


class RelevanceScorer:
    def __init__(self, config: RelevanceConfig = DEFAULT_RELEVANCE) -> None:
        self.config = config

    def explain(self, item: NormalizedItem, now: datetime) -> RelevanceBreakdown:
        config = self.config
        normalized = normalize_text(f"{item.title} {item.description}")
        high = _matches(normalized, config.high)
        medium = _matches(normalized, config.medium)
        low = _matches(normalized, config.low)
        bonus = recency_bonus(item.published_at, now)
        source = normalize_text(item.source)
        trusted = any(contains_term(source, name) for name in config.trusted_sources)

        total = (
            len(high) * config.high_weight
            + len(medium) * config.medium_weight
            + len(low) * config.low_weight
            + bonus
            + (config.trusted_source_bonus if trusted else 0)
        )
        return RelevanceBreakdown(
            high_matches=high,
            medium_matches=medium,
            low_matches=low,
            recency_bonus=bonus,
            trusted_source=trusted,
            score=max(0, min(total, MAX_SCORE)),
        )

    def score(self, item: NormalizedItem, now: datetime) -> int:
        return self.explain(item, now).score

    def rank(self, items: list[NormalizedItem], now: datetime) -> list[tuple[NormalizedItem, int]]:
        scored = [(item, self.score(item, now)) for item in items]
        scored.sort(key=lambda pair: (-pair[1], -pair[0].published_at.timestamp(), pair[0].title))
        return scored
