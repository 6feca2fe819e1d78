from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from sports_feed_monitor.domain import (
    FEED_CATEGORIES,
    FEED_PRIORITIES,
    MAX_CHECK_INTERVAL,
    MIN_CHECK_INTERVAL,
    FeedDefinition,
)
from sports_feed_monitor.normalize import canonical_link, is_absolute_http_url


class ConfigError(ValueError):
    """Raised when YAML config or environment settings are invalid."""


@dataclass(frozen=True)
class RelevanceConfig:
    high: tuple[str, ...]
    medium: tuple[str, ...]
    low: tuple[str, ...]
    trusted_sources: tuple[str, ...]
    spam_terms: tuple[str, ...]
    high_weight: int = 20
    medium_weight: int = 10
    low_weight: int = 5
    trusted_source_bonus: int = 10


DEFAULT_RELEVANCE = RelevanceConfig(
    high=("transfer", "injury", "match", "prediction", "odds", "betting", "analysis"),
    medium=("team", "player", "league", "season", "championship", "cup"),
    low=("news", "update", "report", "announcement"),
    trusted_sources=("bbc", "sky", "espn", "goal"),
    spam_terms=("casino", "bonus", "free money", "click here", "limited time"),
)


@dataclass(frozen=True)
class MonitorSettings:
    daily_cap: int = 3
    relevance_threshold: int = 70
    tick_interval_sec: int = 60
    fetch_timeout_sec: int = 10
    max_items_per_feed: int = 50
    db_path: str = "data/app.db"
    content_webhook_url: str | None = None


def _require_str(data: dict[str, Any], key: str, path: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{path}.{key} must be a non-empty string")
    return value.strip()


def _optional_bool(data: dict[str, Any], key: str, default: bool, path: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{path}.{key} must be bool")
    return value


def _optional_int(
    data: dict[str, Any],
    key: str,
    default: int,
    minimum: int,
    path: str,
    maximum: int | None = None,
) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"{path}.{key} must be int >= {minimum}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{path}.{key} must be int <= {maximum}")
    return value


def _optional_choice(data: dict[str, Any], key: str, default: str, choices: set[str], path: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ConfigError(f"{path}.{key} must be one of {', '.join(sorted(choices))}")
    return value.strip().lower()


def _optional_str_list(data: dict[str, Any], key: str, default: tuple[str, ...], path: str) -> tuple[str, ...]:
    if key not in data:
        return default
    value = data[key]
    if not isinstance(value, list) or not value:
        raise ConfigError(f"{path}.{key} must be a non-empty list of strings")
    normalized: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{path}.{key}[{idx}] must be a non-empty string")
        normalized.append(item.strip().lower())
    return tuple(normalized)


def _read_yaml(path: str | Path) -> dict[str, Any]:
    resolved = Path(path)
    if not resolved.exists():
        raise ConfigError(f"Config file does not exist: {resolved}")
    with resolved.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Config root must be a mapping: {resolved}")
    return payload


def load_feeds_config(path: str | Path) -> list[FeedDefinition]:
    payload = _read_yaml(path)
    feeds = payload.get("feeds")
    if not isinstance(feeds, list) or not feeds:
        raise ConfigError("feeds must be a non-empty list")

    seen_ids: set[str] = set()
    seen_urls: set[str] = set()
    parsed: list[FeedDefinition] = []
    for index, raw in enumerate(feeds):
        node_path = f"feeds[{index}]"
        if not isinstance(raw, dict):
            raise ConfigError(f"{node_path} must be a mapping")
        feed_id = _require_str(raw, "id", node_path)
        if feed_id in seen_ids:
            raise ConfigError(f"Duplicate feed id: {feed_id}")
        seen_ids.add(feed_id)
        url = _require_str(raw, "url", node_path)
        if not is_absolute_http_url(url):
            raise ConfigError(f"{node_path}.url must be an absolute http:// or https:// URL")
        url_key = canonical_link(url)
        if url_key in seen_urls:
            raise ConfigError(f"Duplicate feed url: {url}")
        seen_urls.add(url_key)
        parsed.append(
            FeedDefinition(
                id=feed_id,
                name=_require_str(raw, "name", node_path),
                url=url,
                category=_optional_choice(raw, "category", "general", FEED_CATEGORIES, node_path),
                priority=_optional_choice(raw, "priority", "medium", FEED_PRIORITIES, node_path),
                is_active=_optional_bool(raw, "enabled", True, node_path),
                check_interval=_optional_int(
                    raw,
                    "check_interval",
                    30,
                    MIN_CHECK_INTERVAL,
                    node_path,
                    maximum=MAX_CHECK_INTERVAL,
                ),
            )
        )
    return parsed


def load_relevance_config(path: str | Path) -> RelevanceConfig:
    payload = _read_yaml(path)
    node = payload.get("relevance", {})
    if not isinstance(node, dict):
        raise ConfigError("relevance must be a mapping")
    tiers = node.get("tiers", {})
    if not isinstance(tiers, dict):
        raise ConfigError("relevance.tiers must be a mapping")
    weights = node.get("weights", {})
    if not isinstance(weights, dict):
        raise ConfigError("relevance.weights must be a mapping")
    defaults = DEFAULT_RELEVANCE
    return RelevanceConfig(
        high=_optional_str_list(tiers, "high", defaults.high, "relevance.tiers"),
        medium=_optional_str_list(tiers, "medium", defaults.medium, "relevance.tiers"),
        low=_optional_str_list(tiers, "low", defaults.low, "relevance.tiers"),
        trusted_sources=_optional_str_list(node, "trusted_sources", defaults.trusted_sources, "relevance"),
        spam_terms=_optional_str_list(node, "spam_terms", defaults.spam_terms, "relevance"),
        high_weight=_optional_int(weights, "high", defaults.high_weight, 0, "relevance.weights"),
        medium_weight=_optional_int(weights, "medium", defaults.medium_weight, 0, "relevance.weights"),
        low_weight=_optional_int(weights, "low", defaults.low_weight, 0, "relevance.weights"),
        trusted_source_bonus=_optional_int(
            weights, "trusted_source", defaults.trusted_source_bonus, 0, "relevance.weights"
        ),
    )


def _parse_positive_int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be positive integer") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive integer")
    return value


def load_monitor_settings(db_path_override: str | None = None) -> MonitorSettings:
    threshold = _parse_positive_int_env("RELEVANCE_THRESHOLD", 70)
    if threshold > 100:
        raise ConfigError("RELEVANCE_THRESHOLD must be <= 100")
    webhook_url = (os.getenv("CONTENT_WEBHOOK_URL") or "").strip()
    return MonitorSettings(
        daily_cap=_parse_positive_int_env("DAILY_CAP", 3),
        relevance_threshold=threshold,
        tick_interval_sec=_parse_positive_int_env("TICK_INTERVAL_SEC", 60),
        fetch_timeout_sec=_parse_positive_int_env("FETCH_TIMEOUT_SEC", 10),
        max_items_per_feed=_parse_positive_int_env("MAX_ITEMS_PER_FEED", 50),
        db_path=(db_path_override or os.getenv("DB_PATH") or "data/app.db").strip(),
        content_webhook_url=webhook_url or None,
    )
