from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from sports_feed_monitor.config import (
    ConfigError,
    MonitorSettings,
    load_feeds_config,
    load_monitor_settings,
    load_relevance_config,
)
from sports_feed_monitor.monitor import FeedMonitor
from sports_feed_monitor.parser import FeedParser
from sports_feed_monitor.pipeline import (
    ContentPipeline,
    LedgerContentPipeline,
    LoggingContentPipeline,
    WebhookContentPipeline,
)
from sports_feed_monitor.registry import FeedRegistry
from sports_feed_monitor.scorer import RelevanceScorer
from sports_feed_monitor.storage import SQLiteStore

LOGGER = logging.getLogger("sports_feed_monitor")


def configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _json_default(value: object) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def build_monitor(
    settings: MonitorSettings,
    store: SQLiteStore,
    feeds_path: Path,
    relevance_path: Path,
    dry_run: bool,
) -> FeedMonitor:
    relevance = load_relevance_config(relevance_path)
    registry = FeedRegistry()
    registry.load_feeds(load_feeds_config(feeds_path))

    intake: ContentPipeline
    if dry_run or not settings.content_webhook_url:
        if not dry_run:
            LOGGER.warning("CONTENT_WEBHOOK_URL is not set; accepted items are only logged")
        intake = LoggingContentPipeline()
    else:
        intake = WebhookContentPipeline(settings.content_webhook_url)

    parser = FeedParser(
        timeout=settings.fetch_timeout_sec,
        max_items=settings.max_items_per_feed,
        spam_terms=relevance.spam_terms,
    )
    return FeedMonitor(
        registry=registry,
        parser=parser,
        pipeline=LedgerContentPipeline(store, intake),
        scorer=RelevanceScorer(relevance),
        daily_cap=settings.daily_cap,
        relevance_threshold=settings.relevance_threshold,
        tick_interval=float(settings.tick_interval_sec),
    )


def run_monitor(args: argparse.Namespace) -> int:
    settings = load_monitor_settings(db_path_override=args.db_path)
    store = SQLiteStore(settings.db_path)
    try:
        store.initialize()
        monitor = build_monitor(
            settings=settings,
            store=store,
            feeds_path=Path(args.feeds),
            relevance_path=Path(args.relevance),
            dry_run=args.dry_run,
        )
        try:
            if args.once:
                result = monitor.tick()
                LOGGER.info(
                    "run complete: checked=%s failed=%s fetched=%s accepted=%s forwarded=%s dry_run=%s",
                    len(result.checked_feeds),
                    len(result.failed_feeds),
                    result.fetched_items,
                    len(result.accepted_items),
                    result.forwarded,
                    args.dry_run,
                )
                for failure in result.failed_feeds:
                    LOGGER.warning("feed failure: %s (%s): %s", failure.feed_id, failure.feed_url, failure.error)
                return 0

            monitor.start()
            waiter = threading.Event()
            try:
                while not waiter.wait(1.0):
                    pass
            except KeyboardInterrupt:
                LOGGER.info("interrupted; stopping monitor")
            finally:
                monitor.stop()
                stats = monitor.get_stats()
                LOGGER.info(
                    "monitor summary: processed=%s forwarded_today=%s/%s",
                    stats.processed_items_count,
                    stats.items_forwarded_today,
                    stats.daily_cap,
                )
        finally:
            monitor.parser.close()
    finally:
        store.close()
    return 0


def run_self_test(args: argparse.Namespace) -> int:
    feeds = load_feeds_config(args.feeds)
    load_relevance_config(args.relevance)
    settings = load_monitor_settings(db_path_override=args.db_path)
    FeedRegistry(probe=lambda _url: True).load_feeds(feeds)
    store = SQLiteStore(settings.db_path)
    try:
        store.initialize()
    finally:
        store.close()
    print(f"self-test: ok feeds={len(feeds)} daily_cap={settings.daily_cap}")
    return 0


def run_feeds_command(args: argparse.Namespace) -> int:
    registry = FeedRegistry()
    registry.load_feeds(load_feeds_config(args.feeds))
    feeds = registry.get_feeds()
    health = registry.health()

    if args.json:
        payload = {
            "feeds": [asdict(feed) for feed in feeds],
            "health": asdict(health),
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=_json_default))
        return 0

    print("id\tname\tcategory\tpriority\tactive\tinterval_min\turl")
    for feed in feeds:
        print(
            f"{feed.id}\t{feed.name}\t{feed.category}\t{feed.priority}\t"
            f"{feed.is_active}\t{feed.check_interval}\t{feed.url}"
        )
    print(
        f"total={health.total_feeds} active={health.active_feeds} "
        f"average_interval_min={health.average_check_interval:.1f}"
    )
    return 0


def run_check_feed_command(args: argparse.Namespace) -> int:
    settings = load_monitor_settings(db_path_override=None)
    relevance = load_relevance_config(args.relevance)
    registry = FeedRegistry()
    registry.load_feeds(load_feeds_config(args.feeds))
    feed = registry.get_feed(args.feed_id)

    parser = FeedParser(
        timeout=settings.fetch_timeout_sec,
        max_items=settings.max_items_per_feed,
        spam_terms=relevance.spam_terms,
    )
    try:
        items = parser.parse(feed.url)
    finally:
        parser.close()

    scorer = RelevanceScorer(relevance)
    now = datetime.now(timezone.utc)
    print("score\tpublished_at\tcategory\ttitle\tlink")
    for item, score in scorer.rank(items, now):
        marker = "*" if score >= settings.relevance_threshold else " "
        print(f"{marker}{score}\t{item.published_at:%Y-%m-%d %H:%M}\t{item.category}\t{item.title}\t{item.link}")
    print(f"count={len(items)} threshold={settings.relevance_threshold}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monitor sports news feeds and forward relevant items.")
    parser.add_argument("--log-level", default="INFO", help="DEBUG/INFO/WARNING/ERROR")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Start the feed monitor (Ctrl-C to stop).")
    run_parser.add_argument("--feeds", default="data/feeds.yaml")
    run_parser.add_argument("--relevance", default="data/relevance.yaml")
    run_parser.add_argument("--db-path", default=None)
    run_parser.add_argument("--once", action="store_true", help="Run a single check cycle and exit.")
    run_parser.add_argument("--dry-run", action="store_true", help="Log accepted items instead of forwarding.")
    run_parser.set_defaults(handler=run_monitor)

    self_test_parser = subparsers.add_parser("self-test", help="Validate config/env and DB init.")
    self_test_parser.add_argument("--feeds", default="data/feeds.yaml")
    self_test_parser.add_argument("--relevance", default="data/relevance.yaml")
    self_test_parser.add_argument("--db-path", default=None)
    self_test_parser.set_defaults(handler=run_self_test)

    feeds_parser = subparsers.add_parser("feeds", help="List configured feeds and their health.")
    feeds_parser.add_argument("--feeds", default="data/feeds.yaml")
    feeds_parser.add_argument("--json", action="store_true")
    feeds_parser.set_defaults(handler=run_feeds_command)

    check_parser = subparsers.add_parser("check-feed", help="Parse one feed and print scored items.")
    check_parser.add_argument("--feeds", default="data/feeds.yaml")
    check_parser.add_argument("--relevance", default="data/relevance.yaml")
    check_parser.add_argument("--feed-id", required=True)
    check_parser.set_defaults(handler=run_check_feed_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        return args.handler(args)
    except ConfigError as exc:
        LOGGER.error("Config error: %s", exc)
        return 2
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Unhandled error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
