from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable

import feedparser
import requests

from sports_feed_monitor.config import DEFAULT_RELEVANCE
from sports_feed_monitor.domain import NormalizedItem, ParsedFormat
from sports_feed_monitor.errors import ParseError
from sports_feed_monitor.fetcher import DEFAULT_TIMEOUT_SEC, build_session, fetch_document
from sports_feed_monitor.normalize import (
    determine_category,
    extract_first_image,
    is_absolute_http_url,
    normalize_text,
    source_name_from_url,
)

MAX_ITEMS_PER_FEED = 50
MIN_TITLE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 20

LOGGER = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date_string(raw: str) -> datetime | None:
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _first_text(entry: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _is_image(media: dict[str, Any]) -> bool:
    media_type = str(media.get("type") or "").lower()
    return media_type.startswith("image") or str(media.get("medium") or "").lower() == "image"


class _EntryAdapter:
    """Maps one feedparser entry of a given format onto NormalizedItem."""

    format: ParsedFormat = ParsedFormat.RSS
    date_keys: tuple[str, ...] = ("published", "updated")
    description_keys: tuple[str, ...] = ("summary", "description")
    guid_keys: tuple[str, ...] = ("guid", "id")

    def to_item(self, entry: dict[str, Any], feed_url: str, now: datetime) -> NormalizedItem | None:
        title = _first_text(entry, "title")
        link = self._link(entry)
        if not title or not link:
            self._log_drop(feed_url, "missing title or link", link or title)
            return None
        if not is_absolute_http_url(link):
            self._log_drop(feed_url, "link is not absolute http(s)", link)
            return None

        description = _first_text(entry, *self.description_keys)
        content = self._content(entry)
        if content is None:
            LOGGER.debug(
                "parse fallback: content falls back to description link=%s",
                link,
                extra={"event": "content_fallback", "feed_url": feed_url, "format": self.format.value},
            )
            content = description or None

        published_at = self._published(entry)
        if published_at is None:
            LOGGER.debug(
                "parse fallback: no parsable publish date, using now link=%s",
                link,
                extra={"event": "published_defaulted", "feed_url": feed_url, "format": self.format.value},
            )
            published_at = now

        image_url = self._image(entry) or extract_first_image(content)
        if image_url is None:
            LOGGER.debug(
                "parse fallback: no image found link=%s",
                link,
                extra={"event": "image_missing", "feed_url": feed_url, "format": self.format.value},
            )

        return NormalizedItem(
            title=title,
            description=description,
            link=link,
            published_at=published_at,
            source=source_name_from_url(feed_url),
            category=determine_category(title, description),
            keywords=self._keywords(entry),
            content=content,
            image_url=image_url,
            guid=_first_text(entry, *self.guid_keys) or None,
            author=_first_text(entry, "author") or None,
        )

    def _link(self, entry: dict[str, Any]) -> str:
        return _first_text(entry, "link")

    def _content(self, entry: dict[str, Any]) -> str | None:
        for block in entry.get("content") or []:
            value = (block.get("value") or "").strip()
            if value:
                return value
        return None

    def _published(self, entry: dict[str, Any]) -> datetime | None:
        # Membership first: feedparser maps a missing "updated" onto "published" with a warning.
        for key in self.date_keys:
            parsed_key = f"{key}_parsed"
            if parsed_key in entry and entry[parsed_key]:
                return datetime.fromtimestamp(calendar.timegm(entry[parsed_key]), tz=timezone.utc)
        for key in self.date_keys:
            raw = entry[key] if key in entry else None
            if not raw:
                continue
            parsed = _parse_date_string(raw)
            if parsed is not None:
                return parsed
        return None

    def _image(self, entry: dict[str, Any]) -> str | None:
        for enclosure in entry.get("enclosures") or []:
            href = enclosure.get("href") or enclosure.get("url")
            if href and _is_image(enclosure):
                return href
        for media in entry.get("media_content") or []:
            if media.get("url") and _is_image(media):
                return media["url"]
        for thumbnail in entry.get("media_thumbnail") or []:
            if thumbnail.get("url"):
                return thumbnail["url"]
        return None

    def _keywords(self, entry: dict[str, Any]) -> tuple[str, ...]:
        terms: list[str] = []
        for tag in entry.get("tags") or []:
            term = (tag.get("term") or tag.get("label") or "").strip()
            if term:
                terms.append(term)
        return tuple(dict.fromkeys(terms))

    def _log_drop(self, feed_url: str, reason: str, detail: str) -> None:
        LOGGER.debug(
            "entry dropped: reason=%s detail=%s",
            reason,
            detail or "-",
            extra={"event": "entry_dropped", "feed_url": feed_url, "format": self.format.value},
        )


class _RssAdapter(_EntryAdapter):
    format = ParsedFormat.RSS


class _AtomAdapter(_EntryAdapter):
    format = ParsedFormat.ATOM
    date_keys = ("published", "updated", "created")
    description_keys = ("summary", "subtitle")
    guid_keys = ("id",)

    def _link(self, entry: dict[str, Any]) -> str:
        link = _first_text(entry, "link")
        if link:
            return link
        for candidate in entry.get("links") or []:
            href = (candidate.get("href") or "").strip()
            if href and candidate.get("rel", "alternate") == "alternate":
                return href
        return ""


_ADAPTERS: dict[ParsedFormat, _EntryAdapter] = {
    ParsedFormat.RSS: _RssAdapter(),
    ParsedFormat.ATOM: _AtomAdapter(),
}


def sniff_format(parsed: Any) -> ParsedFormat | None:
    version = str(parsed.get("version") or "").lower()
    if version.startswith("atom"):
        return ParsedFormat.ATOM
    if version.startswith("rss"):
        return ParsedFormat.RSS
    return None


class FeedParser:
    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        max_items: int = MAX_ITEMS_PER_FEED,
        spam_terms: tuple[str, ...] = DEFAULT_RELEVANCE.spam_terms,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be > 0")
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout
        self.max_items = max_items
        self.spam_terms = spam_terms
        self._clock = clock

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session()
        return self._session

    def close(self) -> None:
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def parse(self, url: str) -> list[NormalizedItem]:
        content = fetch_document(self.session, url, timeout=self.timeout)
        items = self.parse_document(content, url)
        LOGGER.info("feed parsed: url=%s items=%s", url, len(items))
        return items

    def parse_document(self, content: bytes | str, feed_url: str) -> list[NormalizedItem]:
        if isinstance(content, str):
            content = content.encode("utf-8")
        parsed = feedparser.parse(content)
        entries = list(parsed.entries)[: self.max_items]
        sniffed = sniff_format(parsed)
        if sniffed is None and not entries:
            detail = parsed.get("bozo_exception") or "document is neither RSS nor Atom"
            raise ParseError(feed_url, str(detail))

        # RSS first; Atom only when RSS yields nothing.
        formats = (sniffed,) if sniffed is not None else (ParsedFormat.RSS, ParsedFormat.ATOM)
        now = self._clock()
        items: list[NormalizedItem] = []
        for parsed_format in formats:
            adapter = _ADAPTERS[parsed_format]
            for entry in entries:
                item = adapter.to_item(entry, feed_url, now)
                if item is not None:
                    items.append(item)
            if items:
                break
        return [item for item in items if self.validate(item)]

    def validate(self, item: NormalizedItem) -> bool:
        reason = self._rejection_reason(item)
        if reason is None:
            return True
        LOGGER.debug(
            "item rejected: reason=%s link=%s",
            reason,
            item.link,
            extra={"event": "item_rejected", "reason": reason},
        )
        return False

    def _rejection_reason(self, item: NormalizedItem) -> str | None:
        if len(item.title or "") < MIN_TITLE_LENGTH:
            return "title_too_short"
        if len(item.description or "") < MIN_DESCRIPTION_LENGTH:
            return "description_too_short"
        if not is_absolute_http_url(item.link):
            return "link_not_http"
        text = normalize_text(f"{item.title} {item.description}")
        for term in self.spam_terms:
            if normalize_text(term) in text:
                return "spam_term"
        return None
