from datetime import datetime, timezone

import pytest
import requests

from sports_feed_monitor.domain import NormalizedItem, ProcessOutcome
from sports_feed_monitor.pipeline import (
    LedgerContentPipeline,
    LoggingContentPipeline,
    WebhookContentPipeline,
    item_to_payload,
)
from sports_feed_monitor.storage import SQLiteStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _item(link: str = "https://example.com/a?utm_source=x") -> NormalizedItem:
    return NormalizedItem(
        title="Match preview with betting odds",
        description="Everything you need before kick-off",
        link=link,
        published_at=NOW,
        source="Sky Sports",
        category="match-analysis",
        keywords=("match", "odds"),
    )


class _DummyResponse:
    def __init__(self, status_code: int = 200, payload=None) -> None:  # type: ignore[no-untyped-def]
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):  # type: ignore[no-untyped-def]
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _DummySession:
    def __init__(self, response: _DummyResponse) -> None:
        self.response = response
        self.calls: list[dict] = []  # type: ignore[type-arg]

    def post(self, url: str, **kwargs):  # type: ignore[no-untyped-def]
        self.calls.append({"url": url, **kwargs})
        return self.response


class _CountingPipeline:
    def __init__(self, outcome: ProcessOutcome) -> None:
        self.outcome = outcome
        self.calls = 0

    def process(self, item: NormalizedItem) -> ProcessOutcome:
        self.calls += 1
        return self.outcome


def test_item_to_payload_includes_canonical_link() -> None:
    payload = item_to_payload(_item())
    assert payload["canonical_link"] == "https://example.com/a"
    assert payload["published_at"] == "2026-10-19T12:00:00+00:00"
    assert payload["keywords"] == ["match", "odds"]


def test_logging_pipeline_generates_nothing() -> None:
    assert LoggingContentPipeline().process(_item()) is ProcessOutcome.SKIPPED


def test_webhook_pipeline_posts_payload() -> None:
    session = _DummySession(_DummyResponse(payload={"status": "created"}))
    pipeline = WebhookContentPipeline("https://hooks.example.com/content", session=session)  # type: ignore[arg-type]

    assert pipeline.process(_item()) is ProcessOutcome.CREATED
    assert session.calls[0]["url"] == "https://hooks.example.com/content"
    assert session.calls[0]["json"]["title"] == "Match preview with betting odds"


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"status": "skipped"}, ProcessOutcome.SKIPPED),
        ({"status": "Skipped"}, ProcessOutcome.SKIPPED),
        (None, ProcessOutcome.CREATED),
        (["unexpected"], ProcessOutcome.CREATED),
    ],
)
def test_webhook_pipeline_maps_response(payload, expected) -> None:  # type: ignore[no-untyped-def]
    session = _DummySession(_DummyResponse(payload=payload))
    pipeline = WebhookContentPipeline("https://hooks.example.com/content", session=session)  # type: ignore[arg-type]
    assert pipeline.process(_item()) is expected


def test_webhook_pipeline_raises_on_http_error() -> None:
    session = _DummySession(_DummyResponse(status_code=503))
    pipeline = WebhookContentPipeline("https://hooks.example.com/content", session=session)  # type: ignore[arg-type]
    with pytest.raises(requests.HTTPError):
        pipeline.process(_item())


def test_webhook_pipeline_requires_url() -> None:
    with pytest.raises(ValueError):
        WebhookContentPipeline("  ")


def test_ledger_pipeline_records_created_links(tmp_path) -> None:
    store = SQLiteStore(str(tmp_path / "app.db"))
    store.initialize()
    try:
        inner = _CountingPipeline(ProcessOutcome.CREATED)
        pipeline = LedgerContentPipeline(store, inner, clock=lambda: NOW)

        assert pipeline.process(_item()) is ProcessOutcome.CREATED
        assert pipeline.process(_item("https://example.com/a/")) is ProcessOutcome.SKIPPED
        assert inner.calls == 1
        assert store.count_links() == 1
    finally:
        store.close()


def test_ledger_pipeline_does_not_record_skipped(tmp_path) -> None:
    store = SQLiteStore(str(tmp_path / "app.db"))
    store.initialize()
    try:
        inner = _CountingPipeline(ProcessOutcome.SKIPPED)
        pipeline = LedgerContentPipeline(store, inner, clock=lambda: NOW)

        assert pipeline.process(_item()) is ProcessOutcome.SKIPPED
        assert pipeline.process(_item()) is ProcessOutcome.SKIPPED
        assert inner.calls == 2
        assert store.count_links() == 0
    finally:
        store.close()
