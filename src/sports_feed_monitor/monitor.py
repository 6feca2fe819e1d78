from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Protocol

from sports_feed_monitor.domain import (
    FeedDefinition,
    FeedFailure,
    FeedHealth,
    MonitorState,
    MonitorStats,
    NormalizedItem,
    TickResult,
)
from sports_feed_monitor.errors import FetchError, NotFoundError, ParseError
from sports_feed_monitor.normalize import canonical_link
from sports_feed_monitor.parser import FeedParser
from sports_feed_monitor.pipeline import ContentPipeline
from sports_feed_monitor.registry import FeedRegistry
from sports_feed_monitor.scorer import RelevanceScorer

DEFAULT_DAILY_CAP = 3
DEFAULT_RELEVANCE_THRESHOLD = 70
DEFAULT_MAX_ITEM_AGE = timedelta(hours=24)
DEFAULT_TICK_INTERVAL_SEC = 60.0

SKIP_BELOW_THRESHOLD = "below_threshold"
SKIP_ALREADY_PROCESSED = "already_processed"
SKIP_STALE = "stale"
SKIP_DAILY_CAP = "daily_cap"
FORWARD_FAILED = "failed"

LOGGER = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledJob(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, interval: float, callback: Callable[[], None]) -> ScheduledJob: ...


class _ThreadJob:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="feed-monitor-timer", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("scheduled tick raised")

    def cancel(self) -> None:
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()


class ThreadScheduler:
    """Runs a callback every `interval` seconds on one daemon thread."""

    def schedule(self, interval: float, callback: Callable[[], None]) -> _ThreadJob:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        return _ThreadJob(interval, callback)


class ProcessedItemRecord:
    def __init__(self) -> None:
        self._links: dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._links)

    def contains(self, link: str) -> bool:
        return canonical_link(link) in self._links

    def mark(self, link: str, processed_at: datetime) -> None:
        self._links.setdefault(canonical_link(link), processed_at)

    def processed_at(self, link: str) -> datetime | None:
        return self._links.get(canonical_link(link))

    def clear(self) -> None:
        self._links.clear()


class DailyQuota:
    def __init__(self, cap: int = DEFAULT_DAILY_CAP, tz: tzinfo = timezone.utc) -> None:
        if cap <= 0:
            raise ValueError("cap must be > 0")
        self.cap = cap
        self.tz = tz
        self._day: date | None = None
        self._count = 0
        self._lock = threading.Lock()

    def _is_new_day(self, now: datetime) -> bool:
        # Only rolls forward; an earlier timestamp never reopens the quota.
        return self._day is None or now.astimezone(self.tz).date() > self._day

    def count(self, now: datetime) -> int:
        with self._lock:
            return 0 if self._is_new_day(now) else self._count

    def available(self, now: datetime) -> bool:
        return self.count(now) < self.cap

    def consume(self, now: datetime) -> None:
        with self._lock:
            if self._is_new_day(now):
                self._day = now.astimezone(self.tz).date()
                self._count = 0
            self._count += 1


class FeedMonitor:
    def __init__(
        self,
        registry: FeedRegistry,
        parser: FeedParser,
        pipeline: ContentPipeline,
        *,
        scorer: RelevanceScorer | None = None,
        clock: Callable[[], datetime] = _utc_now,
        daily_cap: int = DEFAULT_DAILY_CAP,
        relevance_threshold: int = DEFAULT_RELEVANCE_THRESHOLD,
        max_item_age: timedelta = DEFAULT_MAX_ITEM_AGE,
        quota_tz: tzinfo = timezone.utc,
        tick_interval: float = DEFAULT_TICK_INTERVAL_SEC,
        scheduler: Scheduler | None = None,
    ) -> None:
        if not 0 <= relevance_threshold <= 100:
            raise ValueError("relevance_threshold must be within 0..100")
        self.registry = registry
        self.parser = parser
        self.pipeline = pipeline
        self.scorer = scorer or RelevanceScorer()
        self.relevance_threshold = relevance_threshold
        self.max_item_age = max_item_age
        self.tick_interval = tick_interval
        self._clock = clock
        self._scheduler: Scheduler = scheduler or ThreadScheduler()
        self._job: ScheduledJob | None = None
        self._state = MonitorState.STOPPED
        self._state_lock = threading.Lock()
        self._tick_guard = threading.Lock()
        self._processed = ProcessedItemRecord()
        self._quota = DailyQuota(daily_cap, quota_tz)
        self._started_at: datetime | None = None
        self._last_processed_at = clock()

    @property
    def state(self) -> MonitorState:
        return self._state

    def is_active(self) -> bool:
        return self._state is MonitorState.RUNNING

    def start(self) -> None:
        with self._state_lock:
            if self._state is MonitorState.RUNNING:
                LOGGER.warning("monitor start ignored: already running")
                return
            self._job = self._scheduler.schedule(self.tick_interval, self._scheduled_tick)
            self._state = MonitorState.RUNNING
            self._started_at = self._clock()
        LOGGER.info(
            "monitor started: tick_interval=%ss active_feeds=%s",
            self.tick_interval,
            self.registry.health().active_feeds,
        )

    def stop(self) -> None:
        with self._state_lock:
            if self._state is MonitorState.STOPPED:
                LOGGER.info("monitor stop ignored: not running")
                return
            if self._job is not None:
                self._job.cancel()
                self._job = None
            self._state = MonitorState.STOPPED
            self._started_at = None
        LOGGER.info("monitor stopped")

    def _scheduled_tick(self) -> None:
        try:
            self.tick()
        except Exception:  # noqa: BLE001
            LOGGER.exception("tick failed")

    def tick(self, now: datetime | None = None) -> TickResult:
        if not self._tick_guard.acquire(blocking=False):
            LOGGER.warning("tick skipped: reason=previous tick still running")
            return TickResult(ran=False)
        try:
            current = now or self._clock()
            feeds = self.registry.due_feeds(current)
            if not feeds:
                LOGGER.debug("tick: no feeds due")
                return TickResult(ran=True)
            LOGGER.info("tick: feeds_due=%s", len(feeds))
            return self._run_cycle(feeds, current)
        finally:
            self._tick_guard.release()

    def check_feed(self, feed_id: str, now: datetime | None = None) -> TickResult:
        """Check one feed immediately, regardless of its interval."""
        feed = self.registry.get_feed(feed_id)
        if not feed.is_active:
            LOGGER.info("check skipped: reason=inactive feed_id=%s", feed_id)
            return TickResult(ran=False)
        if not self._tick_guard.acquire(blocking=False):
            LOGGER.warning("check skipped: reason=tick running feed_id=%s", feed_id)
            return TickResult(ran=False)
        try:
            return self._run_cycle([feed], now or self._clock())
        finally:
            self._tick_guard.release()

    def check_all_feeds(self, now: datetime | None = None) -> TickResult:
        """Check every active feed immediately, ignoring check intervals."""
        if not self._tick_guard.acquire(blocking=False):
            LOGGER.warning("check all skipped: reason=tick running")
            return TickResult(ran=False)
        try:
            feeds = [feed for feed in self.registry.get_feeds() if feed.is_active]
            LOGGER.info("check all: active_feeds=%s", len(feeds))
            return self._run_cycle(feeds, now or self._clock())
        finally:
            self._tick_guard.release()

    def _run_cycle(self, feeds: list[FeedDefinition], now: datetime) -> TickResult:
        checked: list[str] = []
        failures: list[FeedFailure] = []
        accepted: list[NormalizedItem] = []
        skipped: Counter[str] = Counter()
        forwarded: Counter[str] = Counter()
        fetched = 0

        for feed in feeds:
            try:
                items = self.parser.parse(feed.url)
            except (FetchError, ParseError) as exc:
                LOGGER.warning("feed check failed: feed_id=%s url=%s error=%s", feed.id, feed.url, exc)
                failures.append(FeedFailure(feed_id=feed.id, feed_url=feed.url, error=str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("feed check crashed: feed_id=%s url=%s", feed.id, feed.url)
                failures.append(FeedFailure(feed_id=feed.id, feed_url=feed.url, error=str(exc)))
                continue

            try:
                self.registry.mark_checked(feed.id, now)
            except NotFoundError:
                LOGGER.warning("feed removed during check: feed_id=%s", feed.id)
            checked.append(feed.id)
            fetched += len(items)

            for item, score in self.scorer.rank(items, now):
                reason = self._rejection_reason(item, score, now)
                if reason is not None:
                    skipped[reason] += 1
                    LOGGER.debug("item skipped: reason=%s score=%s link=%s", reason, score, item.link)
                    continue
                # Marked before forwarding: delivery is at-most-once.
                self._processed.mark(item.link, now)
                self._quota.consume(now)
                self._last_processed_at = now
                accepted.append(item)
                LOGGER.info(
                    "item accepted: feed_id=%s score=%s category=%s link=%s",
                    feed.id,
                    score,
                    item.category,
                    item.link,
                )
                forwarded[self._forward(item)] += 1

        LOGGER.info(
            "cycle complete: checked=%s failed=%s fetched=%s accepted=%s skipped=%s",
            len(checked),
            len(failures),
            fetched,
            len(accepted),
            dict(skipped),
        )
        return TickResult(
            ran=True,
            checked_feeds=tuple(checked),
            failed_feeds=tuple(failures),
            fetched_items=fetched,
            accepted_items=tuple(accepted),
            skipped=dict(skipped),
            forwarded=dict(forwarded),
        )

    def _rejection_reason(self, item: NormalizedItem, score: int, now: datetime) -> str | None:
        if score < self.relevance_threshold:
            return SKIP_BELOW_THRESHOLD
        if self._processed.contains(item.link):
            return SKIP_ALREADY_PROCESSED
        if item.published_at < now - self.max_item_age:
            return SKIP_STALE
        if not self._quota.available(now):
            return SKIP_DAILY_CAP
        return None

    def _forward(self, item: NormalizedItem) -> str:
        try:
            outcome = self.pipeline.process(item)
        except Exception:  # noqa: BLE001
            LOGGER.exception("content pipeline failed: link=%s", item.link)
            return FORWARD_FAILED
        LOGGER.info("content pipeline result: outcome=%s link=%s", outcome.value, item.link)
        return outcome.value

    def get_stats(self, now: datetime | None = None) -> MonitorStats:
        current = now or self._clock()
        uptime = 0.0
        if self._state is MonitorState.RUNNING and self._started_at is not None:
            uptime = max(0.0, (current - self._started_at).total_seconds())
        return MonitorStats(
            is_active=self.is_active(),
            processed_items_count=len(self._processed),
            last_processed_date=self._last_processed_at,
            uptime_seconds=uptime,
            items_forwarded_today=self._quota.count(current),
            daily_cap=self._quota.cap,
        )

    def get_monitoring_stats(self, now: datetime | None = None) -> MonitorStats:
        return self.get_stats(now)

    def get_feed_health(self) -> FeedHealth:
        return self.registry.health()

    def clear_processed_items(self) -> None:
        self._processed.clear()
        self._last_processed_at = self._clock()
        LOGGER.info("processed items cleared")
