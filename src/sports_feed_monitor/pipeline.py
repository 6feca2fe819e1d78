from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import requests

from sports_feed_monitor.domain import NormalizedItem, ProcessOutcome
from sports_feed_monitor.fetcher import USER_AGENT
from sports_feed_monitor.normalize import canonical_link
from sports_feed_monitor.storage import SQLiteStore

LOGGER = logging.getLogger(__name__)


class ContentPipeline(Protocol):
    def process(self, item: NormalizedItem) -> ProcessOutcome: ...


def item_to_payload(item: NormalizedItem) -> dict[str, Any]:
    return {
        "title": item.title,
        "description": item.description,
        "link": item.link,
        "canonical_link": canonical_link(item.link),
        "published_at": item.published_at.isoformat(),
        "source": item.source,
        "category": item.category,
        "keywords": list(item.keywords),
        "content": item.content,
        "image_url": item.image_url,
        "guid": item.guid,
        "author": item.author,
    }


class LoggingContentPipeline:
    """Dry-run intake: logs the candidate and generates nothing."""

    def process(self, item: NormalizedItem) -> ProcessOutcome:
        LOGGER.info(
            "content candidate (dry-run): title=%s source=%s link=%s",
            item.title,
            item.source,
            item.link,
        )
        return ProcessOutcome.SKIPPED


class WebhookContentPipeline:
    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 20,
        session: requests.Session | None = None,
    ) -> None:
        target = (webhook_url or "").strip()
        if not target:
            raise ValueError("CONTENT_WEBHOOK_URL is required for webhook intake")
        self.webhook_url = target
        self.timeout = timeout
        self._session = session or requests.Session()

    def process(self, item: NormalizedItem) -> ProcessOutcome:
        response = self._session.post(
            self.webhook_url,
            json=item_to_payload(item),
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError:
            return ProcessOutcome.CREATED
        if isinstance(payload, dict) and str(payload.get("status", "")).lower() == "skipped":
            return ProcessOutcome.SKIPPED
        return ProcessOutcome.CREATED


class LedgerContentPipeline:
    """Consults the durable link ledger before delegating to the real intake."""

    def __init__(
        self,
        store: SQLiteStore,
        inner: ContentPipeline,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.inner = inner
        self._clock = clock

    def process(self, item: NormalizedItem) -> ProcessOutcome:
        if self.store.has_link(item.link):
            LOGGER.info("content skipped: reason=already_in_ledger link=%s", item.link)
            return ProcessOutcome.SKIPPED
        outcome = self.inner.process(item)
        if outcome is ProcessOutcome.CREATED:
            self.store.record_link(item, outcome, recorded_at=self._clock())
        return outcome
