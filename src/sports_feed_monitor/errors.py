from __future__ import annotations


class FeedMonitorError(Exception):
    """Base class for feed registry, parser and monitor failures."""


class ValidationError(FeedMonitorError):
    """Raised when a feed definition or its URL fails validation."""


class DuplicateError(FeedMonitorError):
    """Raised when a feed id or URL is already registered."""


class NotFoundError(FeedMonitorError):
    """Raised when a feed id is unknown."""


class FetchError(FeedMonitorError):
    """Raised on network failure, timeout or a non-2xx response."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"fetch failed for {url}: {detail}")
        self.url = url
        self.detail = detail


class ParseError(FeedMonitorError):
    """Raised when a document is neither valid RSS nor valid Atom."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"parse failed for {url}: {detail}")
        self.url = url
        self.detail = detail
