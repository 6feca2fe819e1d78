import textwrap

import pytest

from sports_feed_monitor.config import (
    DEFAULT_RELEVANCE,
    ConfigError,
    load_feeds_config,
    load_monitor_settings,
    load_relevance_config,
)


def test_load_feeds_config_has_default_feeds() -> None:
    feeds = load_feeds_config("data/feeds.yaml")
    assert len(feeds) == 5
    assert feeds[0].id == "bbc-sports"
    assert feeds[0].category == "sports"
    assert feeds[0].priority == "high"
    assert feeds[0].last_checked is None


def test_load_relevance_config_matches_defaults() -> None:
    assert load_relevance_config("data/relevance.yaml") == DEFAULT_RELEVANCE


def test_load_feeds_detects_duplicate_urls_after_normalization(tmp_path) -> None:
    config_path = tmp_path / "feeds.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            feeds:
              - id: feed-1
                name: Feed 1
                url: https://example.com/rss?x=1&utm_source=aa
              - id: feed-2
                name: Feed 2
                url: https://example.com/rss?x=1
            """
        ),
        encoding="utf-8",
    )

    with pytest.raises(ConfigError):
        load_feeds_config(config_path)


@pytest.mark.parametrize(
    "extra",
    [
        "check_interval: 4",
        "check_interval: 1441",
        "category: tennis",
        "priority: urgent",
        "enabled: maybe",
    ],
)
def test_load_feeds_rejects_invalid_fields(tmp_path, extra: str) -> None:
    config_path = tmp_path / "feeds.yaml"
    config_path.write_text(
        "feeds:\n"
        "  - id: feed-1\n"
        "    name: Feed 1\n"
        "    url: https://example.com/rss\n"
        f"    {extra}\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigError):
        load_feeds_config(config_path)


@pytest.mark.parametrize("url", ["https://", "http:///rss.xml", "ftp://example.com/rss"])
def test_load_feeds_rejects_url_without_http_host(tmp_path, url: str) -> None:
    config_path = tmp_path / "feeds.yaml"
    config_path.write_text(
        "feeds:\n"
        "  - id: feed-1\n"
        "    name: Feed 1\n"
        f"    url: {url}\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigError):
        load_feeds_config(config_path)


def test_load_relevance_config_partial_override(tmp_path) -> None:
    config_path = tmp_path / "relevance.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            relevance:
              tiers:
                high: [Derby]
              weights:
                high: 30
            """
        ),
        encoding="utf-8",
    )

    relevance = load_relevance_config(config_path)
    assert relevance.high == ("derby",)
    assert relevance.high_weight == 30
    assert relevance.medium == DEFAULT_RELEVANCE.medium
    assert relevance.spam_terms == DEFAULT_RELEVANCE.spam_terms


def test_load_monitor_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("DAILY_CAP", "5")
    monkeypatch.setenv("RELEVANCE_THRESHOLD", "60")
    monkeypatch.setenv("CONTENT_WEBHOOK_URL", " https://hooks.example.com/intake ")
    monkeypatch.delenv("DB_PATH", raising=False)

    settings = load_monitor_settings()
    assert settings.daily_cap == 5
    assert settings.relevance_threshold == 60
    assert settings.content_webhook_url == "https://hooks.example.com/intake"
    assert settings.db_path == "data/app.db"


def test_load_monitor_settings_rejects_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("DAILY_CAP", "zero")
    with pytest.raises(ConfigError):
        load_monitor_settings()

    monkeypatch.setenv("DAILY_CAP", "3")
    monkeypatch.setenv("RELEVANCE_THRESHOLD", "101")
    with pytest.raises(ConfigError):
        load_monitor_settings()
