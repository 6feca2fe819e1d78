from __future__ import annotations

import logging
import ssl

import requests
from requests.adapters import HTTPAdapter

from sports_feed_monitor.errors import FetchError

USER_AGENT = "sports-feed-monitor/0.1 (RSS relevance monitor)"
DEFAULT_TIMEOUT_SEC = 10

LOGGER = logging.getLogger(__name__)


class LegacyTLSAdapter(HTTPAdapter):
    """Enable legacy renegotiation where OpenSSL supports it."""

    def __init__(self, *args, **kwargs) -> None:  # type: ignore[no-untyped-def]
        self._ssl_context = ssl.create_default_context()
        if hasattr(ssl, "OP_LEGACY_SERVER_CONNECT"):
            self._ssl_context.options |= ssl.OP_LEGACY_SERVER_CONNECT
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args, **kwargs) -> None:  # type: ignore[no-untyped-def]
        kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    session.mount("https://", LegacyTLSAdapter())
    return session


def fetch_document(
    session: requests.Session,
    url: str,
    timeout: float = DEFAULT_TIMEOUT_SEC,
) -> bytes:
    try:
        response = session.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except requests.Timeout as exc:
        raise FetchError(url, f"timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        raise FetchError(url, str(exc)) from exc
    return response.content


def probe_feed_url(
    session: requests.Session,
    url: str,
    timeout: float = DEFAULT_TIMEOUT_SEC,
) -> bool:
    """HEAD the URL and report whether it answers 2xx with an XML content type."""
    try:
        response = session.head(
            url,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            allow_redirects=True,
        )
    except requests.RequestException as exc:
        LOGGER.warning("feed probe failed: url=%s error=%s", url, exc)
        return False
    content_type = (response.headers.get("Content-Type") or "").lower()
    if not response.ok or "xml" not in content_type:
        LOGGER.warning(
            "feed probe rejected: url=%s status=%s content_type=%s",
            url,
            response.status_code,
            content_type or "-",
        )
        return False
    return True
