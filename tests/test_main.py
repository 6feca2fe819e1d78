from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from sports_feed_monitor import main as main_module
from sports_feed_monitor.domain import NormalizedItem

ROOT = Path(__file__).resolve().parents[1]
FEEDS_PATH = str(ROOT / "data" / "feeds.yaml")
RELEVANCE_PATH = str(ROOT / "data" / "relevance.yaml")


class _StubFeedParser:
    instances: list[_StubFeedParser] = []

    def __init__(self, **kwargs) -> None:  # type: ignore[no-untyped-def]
        self.kwargs = kwargs
        self.calls: list[str] = []
        self.closed = False
        _StubFeedParser.instances.append(self)

    def parse(self, url: str) -> list[NormalizedItem]:
        self.calls.append(url)
        return [
            NormalizedItem(
                title="Transfer analysis ahead of the derby match",
                description="Betting odds and prediction for the weekend fixture",
                link="https://www.bbc.co.uk/sport/football/1",
                published_at=datetime.now(timezone.utc),
                source="BBC Sport",
                category="transfer-news",
            )
        ]

    def close(self) -> None:
        self.closed = True


def _write_single_feed(tmp_path: Path) -> str:
    path = tmp_path / "feeds.yaml"
    path.write_text(
        "\n".join(
            [
                "version: 1",
                "feeds:",
                "  - id: bbc-sports",
                "    name: BBC Sport",
                "    url: https://feeds.bbci.co.uk/sport/football/rss.xml",
                "    category: sports",
                "    priority: high",
            ]
        ),
        encoding="utf-8",
    )
    return str(path)


def test_self_test_validates_config_and_db(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.delenv("DAILY_CAP", raising=False)
    db_path = tmp_path / "state" / "app.db"

    exit_code = main_module.main(
        ["self-test", "--feeds", FEEDS_PATH, "--relevance", RELEVANCE_PATH, "--db-path", str(db_path)]
    )

    assert exit_code == 0
    assert db_path.exists()
    assert "self-test: ok feeds=5 daily_cap=3" in capsys.readouterr().out


def test_invalid_env_returns_config_exit_code(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DAILY_CAP", "zero")
    exit_code = main_module.main(
        ["self-test", "--feeds", FEEDS_PATH, "--relevance", RELEVANCE_PATH, "--db-path", str(tmp_path / "app.db")]
    )
    assert exit_code == 2


def test_missing_feeds_file_returns_config_exit_code(tmp_path) -> None:
    exit_code = main_module.main(["feeds", "--feeds", str(tmp_path / "missing.yaml")])
    assert exit_code == 2


def test_feeds_command_prints_json(capsys) -> None:
    exit_code = main_module.main(["feeds", "--feeds", FEEDS_PATH, "--json"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [feed["id"] for feed in payload["feeds"]][0] == "bbc-sports"
    assert payload["health"]["total_feeds"] == 5
    assert payload["health"]["last_checked"] is None


def test_run_once_dry_run_checks_due_feeds(monkeypatch, tmp_path) -> None:
    _StubFeedParser.instances.clear()
    monkeypatch.setattr(main_module, "FeedParser", _StubFeedParser)
    monkeypatch.delenv("CONTENT_WEBHOOK_URL", raising=False)
    feeds_path = _write_single_feed(tmp_path)

    exit_code = main_module.main(
        [
            "run",
            "--once",
            "--dry-run",
            "--feeds",
            feeds_path,
            "--relevance",
            RELEVANCE_PATH,
            "--db-path",
            str(tmp_path / "app.db"),
        ]
    )

    assert exit_code == 0
    parser = _StubFeedParser.instances[0]
    assert parser.calls == ["https://feeds.bbci.co.uk/sport/football/rss.xml"]
    assert parser.closed is True


def test_check_feed_prints_scored_items(monkeypatch, tmp_path, capsys) -> None:
    _StubFeedParser.instances.clear()
    monkeypatch.setattr(main_module, "FeedParser", _StubFeedParser)
    feeds_path = _write_single_feed(tmp_path)

    exit_code = main_module.main(
        ["check-feed", "--feeds", feeds_path, "--relevance", RELEVANCE_PATH, "--feed-id", "bbc-sports"]
    )

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "*100" in out
    assert "count=1 threshold=70" in out


def test_check_feed_unknown_id_fails(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(main_module, "FeedParser", _StubFeedParser)
    feeds_path = _write_single_feed(tmp_path)

    exit_code = main_module.main(
        ["check-feed", "--feeds", feeds_path, "--relevance", RELEVANCE_PATH, "--feed-id", "missing"]
    )

    assert exit_code == 1


def test_feed_url_without_host_returns_config_exit_code(tmp_path) -> None:
    feeds_path = tmp_path / "feeds.yaml"
    feeds_path.write_text(
        "feeds:\n  - id: broken\n    name: Broken\n    url: https://\n",
        encoding="utf-8",
    )
    assert main_module.main(["feeds", "--feeds", str(feeds_path)]) == 2
