from __future__ import annotations

import hashlib
import re
import unicodedata
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_QUERY_KEYS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
}

KNOWN_SOURCES = {
    "bbci.co.uk": "BBC Sport",
    "bbc.co.uk": "BBC Sport",
    "skysports.com": "Sky Sports",
    "sky.com": "Sky Sports",
    "espn.com": "ESPN",
    "goal.com": "Goal.com",
    "transfermarkt.com": "Transfermarkt",
    "theguardian.com": "The Guardian",
    "telegraph.co.uk": "The Telegraph",
    "independent.co.uk": "The Independent",
}

_SPACE_PATTERN = re.compile(r"\s+")
_IMG_SRC_PATTERN = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE)
_VERSUS_PATTERN = re.compile(r"\bvs?\b")

# (topic tag, trigger terms); first match wins.
_TOPIC_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("transfer-news", ("transfer", "signing")),
    ("match-analysis", ("match",)),
    ("league-analysis", ("league", "table", "standings")),
    ("betting-trends", ("bet", "odds", "prediction")),
)


def normalize_text(value: str) -> str:
    normalized = unicodedata.normalize("NFKC", value or "").lower()
    return _SPACE_PATTERN.sub(" ", normalized).strip()


def contains_term(normalized_text: str, term: str) -> bool:
    return normalize_text(term) in normalized_text


def is_absolute_http_url(url: str) -> bool:
    parsed = urlsplit((url or "").strip())
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.netloc)


def canonical_link(url: str) -> str:
    parsed = urlsplit((url or "").strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = parsed.netloc.lower()
    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    filtered_pairs = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in TRACKING_QUERY_KEYS
    ]
    query = urlencode(sorted(filtered_pairs), doseq=True)
    return urlunsplit((scheme, netloc, path, query, ""))


def stable_url_key(url: str) -> str:
    return hashlib.sha256(canonical_link(url).encode("utf-8")).hexdigest()


def source_name_from_url(url: str) -> str:
    host = urlsplit((url or "").strip()).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    if not host:
        return "Unknown Source"
    for domain, name in KNOWN_SOURCES.items():
        if host == domain or host.endswith("." + domain):
            return name
    return host


def determine_category(title: str, description: str) -> str:
    text = normalize_text(f"{title} {description}")
    for tag, terms in _TOPIC_RULES:
        if any(term in text for term in terms):
            return tag
        if tag == "match-analysis" and _VERSUS_PATTERN.search(text):
            return tag
    return "general"


def extract_first_image(content: str | None) -> str | None:
    if not content:
        return None
    match = _IMG_SRC_PATTERN.search(content)
    return match.group(1) if match else None
