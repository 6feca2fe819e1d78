from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sports_feed_monitor.domain import (
    FEED_CATEGORIES,
    FEED_PRIORITIES,
    MAX_CHECK_INTERVAL,
    MIN_CHECK_INTERVAL,
    FeedDefinition,
    FeedHealth,
)
from sports_feed_monitor.errors import DuplicateError, NotFoundError, ValidationError
from sports_feed_monitor.fetcher import build_session, probe_feed_url
from sports_feed_monitor.normalize import canonical_link, is_absolute_http_url

LOGGER = logging.getLogger(__name__)

UrlProbe = Callable[[str], bool]


def _default_probe(url: str) -> bool:
    with build_session() as session:
        return probe_feed_url(session, url)


def validate_feed_definition(feed: FeedDefinition) -> None:
    if not feed.id or not feed.id.strip():
        raise ValidationError("feed id must be a non-empty string")
    if not feed.name or not feed.name.strip():
        raise ValidationError(f"feed {feed.id}: name must be a non-empty string")
    if not is_absolute_http_url(feed.url):
        raise ValidationError(f"feed {feed.id}: url must be an absolute http(s) URL")
    if feed.category not in FEED_CATEGORIES:
        raise ValidationError(
            f"feed {feed.id}: category must be one of {', '.join(sorted(FEED_CATEGORIES))}"
        )
    if feed.priority not in FEED_PRIORITIES:
        raise ValidationError(
            f"feed {feed.id}: priority must be one of {', '.join(sorted(FEED_PRIORITIES))}"
        )
    if (
        isinstance(feed.check_interval, bool)
        or not isinstance(feed.check_interval, int)
        or not MIN_CHECK_INTERVAL <= feed.check_interval <= MAX_CHECK_INTERVAL
    ):
        raise ValidationError(
            f"feed {feed.id}: check_interval must be between "
            f"{MIN_CHECK_INTERVAL} and {MAX_CHECK_INTERVAL} minutes"
        )


def is_due(feed: FeedDefinition, now: datetime) -> bool:
    if not feed.is_active:
        return False
    if feed.last_checked is None:
        return True
    return now - feed.last_checked >= timedelta(minutes=feed.check_interval)


class FeedRegistry:
    def __init__(self, probe: UrlProbe | None = None) -> None:
        self._probe = probe or _default_probe
        self._feeds: dict[str, FeedDefinition] = {}
        self._lock = threading.Lock()

    def load_feeds(self, feeds: Iterable[FeedDefinition]) -> int:
        """Seed feeds from configuration without probing their URLs."""
        loaded = 0
        for feed in feeds:
            validate_feed_definition(feed)
            with self._lock:
                self._ensure_unique(feed)
                self._feeds[feed.id] = feed
            loaded += 1
        LOGGER.info("feeds loaded: count=%s", loaded)
        return loaded

    def add_feed(self, feed: FeedDefinition) -> FeedDefinition:
        validate_feed_definition(feed)
        with self._lock:
            self._ensure_unique(feed)
        if not self._probe(feed.url):
            raise ValidationError(f"feed {feed.id}: {feed.url} is unreachable or not an XML feed")
        with self._lock:
            # Re-check: the probe ran without the lock held.
            self._ensure_unique(feed)
            self._feeds[feed.id] = feed
        LOGGER.info("feed added: id=%s name=%s url=%s", feed.id, feed.name, feed.url)
        return feed

    def remove_feed(self, feed_id: str) -> FeedDefinition:
        with self._lock:
            removed = self._feeds.pop(feed_id, None)
        if removed is None:
            raise NotFoundError(f"feed not found: {feed_id}")
        LOGGER.info("feed removed: id=%s name=%s", removed.id, removed.name)
        return removed

    def update_feed(self, feed: FeedDefinition) -> FeedDefinition:
        with self._lock:
            existing = self._feeds.get(feed.id)
        if existing is None:
            raise NotFoundError(f"feed not found: {feed.id}")
        validate_feed_definition(feed)
        url_changed = canonical_link(feed.url) != canonical_link(existing.url)
        if url_changed:
            with self._lock:
                self._ensure_unique(feed, ignore_id=feed.id)
            if not self._probe(feed.url):
                raise ValidationError(f"feed {feed.id}: {feed.url} is unreachable or not an XML feed")

        updated = feed
        if feed.last_checked is None:
            updated = replace(feed, last_checked=existing.last_checked)
        with self._lock:
            if feed.id not in self._feeds:
                raise NotFoundError(f"feed not found: {feed.id}")
            if url_changed:
                self._ensure_unique(feed, ignore_id=feed.id)
            self._feeds[feed.id] = updated
        LOGGER.info("feed updated: id=%s name=%s url_changed=%s", feed.id, feed.name, url_changed)
        return updated

    def get_feeds(self) -> list[FeedDefinition]:
        with self._lock:
            return list(self._feeds.values())

    def get_feed(self, feed_id: str) -> FeedDefinition:
        with self._lock:
            feed = self._feeds.get(feed_id)
        if feed is None:
            raise NotFoundError(f"feed not found: {feed_id}")
        return feed

    def due_feeds(self, now: datetime) -> list[FeedDefinition]:
        with self._lock:
            return [feed for feed in self._feeds.values() if is_due(feed, now)]

    def mark_checked(self, feed_id: str, checked_at: datetime) -> FeedDefinition:
        with self._lock:
            feed = self._feeds.get(feed_id)
            if feed is None:
                raise NotFoundError(f"feed not found: {feed_id}")
            updated = replace(feed, last_checked=checked_at)
            self._feeds[feed_id] = updated
        return updated

    def health(self) -> FeedHealth:
        with self._lock:
            feeds = list(self._feeds.values())
        active = [feed for feed in feeds if feed.is_active]
        checked = [feed.last_checked for feed in active if feed.last_checked is not None]
        average = sum(feed.check_interval for feed in active) / len(active) if active else 0.0
        return FeedHealth(
            total_feeds=len(feeds),
            active_feeds=len(active),
            last_checked=max(checked) if checked else None,
            average_check_interval=average,
        )

    def _ensure_unique(self, feed: FeedDefinition, ignore_id: str | None = None) -> None:
        if ignore_id is None and feed.id in self._feeds:
            raise DuplicateError(f"feed id already registered: {feed.id}")
        url_key = canonical_link(feed.url)
        for other in self._feeds.values():
            if other.id == ignore_id:
                continue
            if canonical_link(other.url) == url_key:
                raise DuplicateError(f"feed url already registered by {other.id}: {feed.url}")
