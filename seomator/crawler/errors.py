"""Exception types raised by the crawler package."""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for crawler failures that escape a crawl."""


class InvalidStartUrlError(CrawlerError, ValueError):
    """Raised when `Crawler.crawl` is given a start URL it cannot parse."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Invalid start URL: {url}")
        self.url = url


class FetchError(Exception):
    """A page could not be retrieved (network failure, bad URL, ...)."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class FetchTimeoutError(FetchError):
    """The response did not arrive within the configured timeout."""


__all__ = [
    "CrawlerError",
    "FetchError",
    "FetchTimeoutError",
    "InvalidStartUrlError",
]
