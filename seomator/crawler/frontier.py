"""Thread-safe crawl frontier: visited set, FIFO queue, and page budget.

Every URL is normalized before the visited check, so each distinct normalized
URL is enqueued at most once per crawl. Dequeue is gated on
``len(results) + active < max_pages`` and the gate check, dequeue, and active
count increment happen under one lock, so concurrent workers can never
overshoot the page budget.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum

from .types import CrawledPage, CrawlProgress
from .url import UrlFilter, host_from_url, is_non_html_resource


LOGGER = logging.getLogger(__name__)


class EnqueueStatus(str, Enum):
    """Result status for frontier enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_SEEN = "skipped_seen"
    SKIPPED_OFF_DOMAIN = "skipped_off_domain"
    SKIPPED_NON_HTML = "skipped_non_html"
    SKIPPED_FILTERED = "skipped_filtered"
    SKIPPED_CLOSED = "skipped_closed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    normalized_url: str

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


class Frontier:
    """Frontier shared by the worker threads of a single crawl.

    Workers that find the queue empty wait on a condition variable until either
    new URLs are pushed or no worker is still processing a page; only then is
    the frontier exhausted. `idle_timeout_seconds` bounds a single wait.
    """

    def __init__(
        self,
        url_filter: UrlFilter,
        hostname: str,
        *,
        idle_timeout_seconds: float | None = None,
    ) -> None:
        self.url_filter = url_filter
        self.hostname = hostname
        self.idle_timeout_seconds = idle_timeout_seconds

        self._cond = threading.Condition()
        self._visited: set[str] = set()
        self._queue: deque[str] = deque()
        self._results: list[CrawledPage] = []
        self._active_count = 0
        self._closed = False

    def seed(self, url: str) -> EnqueueResult:
        """Enqueue the crawl's start URL, bypassing domain and pattern filters."""

        normalized = self.url_filter.normalize_url(url)
        with self._cond:
            return self._enqueue_locked(normalized)

    def push(self, url: str) -> EnqueueResult:
        """Normalize and attempt to enqueue one discovered URL."""

        normalized = self.url_filter.normalize_url(url)
        with self._cond:
            if self._closed:
                return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED, normalized)
            if normalized in self._visited:
                return EnqueueResult(EnqueueStatus.SKIPPED_SEEN, normalized)
            if host_from_url(normalized) != self.hostname:
                return EnqueueResult(EnqueueStatus.SKIPPED_OFF_DOMAIN, normalized)
            if is_non_html_resource(normalized):
                return EnqueueResult(EnqueueStatus.SKIPPED_NON_HTML, normalized)
            if not self.url_filter.should_crawl(normalized):
                return EnqueueResult(EnqueueStatus.SKIPPED_FILTERED, normalized)
            return self._enqueue_locked(normalized)

    def _enqueue_locked(self, normalized: str) -> EnqueueResult:
        if self._closed:
            return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED, normalized)
        if normalized in self._visited:
            return EnqueueResult(EnqueueStatus.SKIPPED_SEEN, normalized)
        self._visited.add(normalized)
        self._queue.append(normalized)
        self._cond.notify_all()
        return EnqueueResult(EnqueueStatus.ENQUEUED, normalized)

    def pop(self, max_pages: int) -> str | None:
        """Claim the next URL for processing, or None when the worker should exit."""

        with self._cond:
            while True:
                if self._closed or len(self._results) >= max_pages:
                    return None

                if self._queue and len(self._results) + self._active_count < max_pages:
                    self._active_count += 1
                    return self._queue.popleft()

                if self._active_count == 0:
                    return None

                if not self._cond.wait(timeout=self.idle_timeout_seconds):
                    LOGGER.warning(
                        "Worker idle for %.1fs with %d page(s) in flight; giving up",
                        self.idle_timeout_seconds,
                        self._active_count,
                    )
                    return None

    def complete(self, page: CrawledPage | None) -> None:
        """Release a claimed URL, recording its page when one was produced."""

        with self._cond:
            if page is not None:
                self._results.append(page)
            self._active_count -= 1
            self._cond.notify_all()

    def close(self) -> None:
        """Stop handing out and accepting URLs; wakes every waiting worker."""

        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def is_visited(self, url: str) -> bool:
        with self._cond:
            return self.url_filter.normalize_url(url) in self._visited

    def progress(self, current_url: str) -> CrawlProgress:
        with self._cond:
            return CrawlProgress(
                crawled=len(self._results),
                total=len(self._results) + len(self._queue) + self._active_count,
                current_url=current_url,
                discovered=len(self._visited),
            )

    def results(self) -> list[CrawledPage]:
        """Return completed pages in completion order."""

        with self._cond:
            return list(self._results)

    def visited_urls(self) -> set[str]:
        with self._cond:
            return set(self._visited)

    def qsize(self) -> int:
        with self._cond:
            return len(self._queue)

    def snapshot(self) -> dict[str, int | bool]:
        """Return frontier counters for logs/stats reporting."""

        with self._cond:
            return {
                "closed": self._closed,
                "queue_size": len(self._queue),
                "visited": len(self._visited),
                "active": self._active_count,
                "results": len(self._results),
            }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
]
