from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

FEED_CATEGORIES = {"sports", "betting", "football", "general"}
FEED_PRIORITIES = {"high", "medium", "low"}
MIN_CHECK_INTERVAL = 5
MAX_CHECK_INTERVAL = 1440


class ParsedFormat(Enum):
    RSS = "rss"
    ATOM = "atom"


class MonitorState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class ProcessOutcome(Enum):
    CREATED = "created"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class FeedDefinition:
    id: str
    name: str
    url: str
    category: str = "general"
    priority: str = "medium"
    is_active: bool = True
    check_interval: int = 30
    last_checked: datetime | None = None


@dataclass(frozen=True)
class NormalizedItem:
    title: str
    description: str
    link: str
    published_at: datetime
    source: str
    category: str
    keywords: tuple[str, ...] = ()
    content: str | None = None
    image_url: str | None = None
    guid: str | None = None
    author: str | None = None


@dataclass(frozen=True)
class FeedFailure:
    feed_id: str
    feed_url: str
    error: str


@dataclass(frozen=True)
class TickResult:
    ran: bool
    checked_feeds: tuple[str, ...] = ()
    failed_feeds: tuple[FeedFailure, ...] = ()
    fetched_items: int = 0
    accepted_items: tuple[NormalizedItem, ...] = ()
    skipped: dict[str, int] = field(default_factory=dict)
    forwarded: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class FeedHealth:
    total_feeds: int
    active_feeds: int
    last_checked: datetime | None
    average_check_interval: float


@dataclass(frozen=True)
class MonitorStats:
    is_active: bool
    processed_items_count: int
    last_processed_date: datetime
    uptime_seconds: float
    items_forwarded_today: int
    daily_cap: int
