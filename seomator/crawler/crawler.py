"""Bounded-concurrency, same-host crawler.

A crawl runs `concurrency` worker threads against one `Frontier`. Each worker
claims a URL, fetches and extracts it, pushes newly discovered internal links,
and releases the URL. One bad page never stops the crawl: fetch and extraction
failures become `CrawledPage.error`, and a failing Core Web Vitals callback is
ignored. Only an unparseable start URL, or an exception raised by the caller's
progress callback, escapes `crawl()`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

from .config import CrawlConfig
from .constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    DEFAULT_MAX_PAGES,
    DEFAULT_TIMEOUT_MS,
)
from .errors import InvalidStartUrlError
from .fetcher import Fetcher
from .frontier import Frontier
from .parsers import HTMLParser
from .stats import StatsCollector
from .types import CoreWebVitals, CrawledPage, CrawlProgress, CrawlStage, ErrorRecord, PageContext
from .url import UrlFilter, UrlFilterOptions


LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[CrawlProgress], None]
VitalsCallback = Callable[[str], "CoreWebVitals | Mapping[str, Any]"]


@dataclass(slots=True)
class CrawlerOptions:
    """Options for `Crawler`; `max_pages`/`concurrency` may be overridden per crawl."""

    max_pages: int = DEFAULT_MAX_PAGES
    concurrency: int = DEFAULT_CONCURRENCY
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    on_progress: ProgressCallback | None = None
    get_core_web_vitals: VitalsCallback | None = None
    url_filter: UrlFilterOptions = field(default_factory=UrlFilterOptions)
    idle_timeout_seconds: float | None = DEFAULT_IDLE_TIMEOUT_SECONDS

    @classmethod
    def from_config(
        cls,
        config: CrawlConfig,
        *,
        on_progress: ProgressCallback | None = None,
        get_core_web_vitals: VitalsCallback | None = None,
    ) -> "CrawlerOptions":
        return cls(
            max_pages=config.max_pages,
            concurrency=config.concurrency,
            timeout_ms=config.timeout_ms,
            on_progress=on_progress,
            get_core_web_vitals=get_core_web_vitals,
            url_filter=config.url_filter_options(),
            idle_timeout_seconds=config.idle_timeout_seconds,
        )


class Crawler:
    """Crawl one site breadth-first from a start URL.

    Reusable across sequential `crawl()` calls; overlapping calls on the same
    instance are not supported. `options` is copied, so per-crawl overrides
    never leak into an instance shared with other crawlers.
    """

    def __init__(
        self,
        options: CrawlerOptions | None = None,
        *,
        fetcher: Fetcher | None = None,
        html_parser: HTMLParser | None = None,
        stats: StatsCollector | None = None,
    ) -> None:
        self.options = replace(options) if options is not None else CrawlerOptions()
        self.url_filter = UrlFilter(self.options.url_filter)

        self.fetcher = fetcher or Fetcher()
        self.html_parser = html_parser or HTMLParser()
        self.stats = stats

        self._owns_fetcher = fetcher is None
        self._frontier: Frontier | None = None
        self._cancelled = threading.Event()
        self._callback_error: BaseException | None = None
        self._error_lock = threading.Lock()
        self._error_records: list[ErrorRecord] = []

    def crawl(
        self,
        start_url: str,
        max_pages: int | None = None,
        concurrency: int | None = None,
    ) -> list[CrawledPage]:
        """Crawl from `start_url` and return pages in completion order."""

        if max_pages is not None:
            self.options.max_pages = max_pages
        if concurrency is not None:
            self.options.concurrency = concurrency

        hostname = self._start_hostname(start_url)

        self._cancelled.clear()
        self._callback_error = None
        with self._error_lock:
            self._error_records = []
        frontier = Frontier(
            self.url_filter,
            hostname,
            idle_timeout_seconds=self.options.idle_timeout_seconds,
        )
        self._frontier = frontier

        seed_result = frontier.seed(start_url)
        if self.stats is not None:
            self.stats.record_enqueue(seed_result)

        LOGGER.info(
            "Starting crawl: url=%s, max_pages=%d, concurrency=%d",
            seed_result.normalized_url,
            self.options.max_pages,
            self.options.concurrency,
        )

        workers = [
            threading.Thread(
                target=self._worker,
                args=(frontier,),
                name=f"crawler-worker-{idx}",
                daemon=True,
            )
            for idx in range(max(1, self.options.concurrency))
        ]
        try:
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()
        finally:
            if self._owns_fetcher:
                self.fetcher.close()

        results = frontier.results()
        if self.stats is not None:
            self.stats.record_frontier_snapshot(frontier.snapshot())
            self.stats.finish()

        if self._callback_error is not None:
            raise self._callback_error

        LOGGER.info(
            "Crawl finished: %d page(s), %d failed, %d URL(s) discovered",
            len(results),
            sum(1 for page in results if not page.ok),
            len(frontier.visited_urls()),
        )
        return results

    def cancel(self) -> None:
        """Ask workers to stop after their current page."""

        self._cancelled.set()
        if self._frontier is not None:
            self._frontier.close()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def visited_urls(self) -> set[str]:
        """Normalized URLs enqueued by the most recent crawl."""

        if self._frontier is None:
            return set()
        return self._frontier.visited_urls()

    def errors(self) -> list[ErrorRecord]:
        """Fetch, extraction and vitals failures of the most recent crawl."""

        with self._error_lock:
            return list(self._error_records)

    @staticmethod
    def _start_hostname(start_url: str) -> str:
        try:
            parsed = urlsplit(start_url)
            hostname = parsed.hostname
        except ValueError as exc:
            raise InvalidStartUrlError(start_url) from exc
        if not parsed.scheme or not hostname:
            raise InvalidStartUrlError(start_url)
        return hostname.lower()

    def _worker(self, frontier: Frontier) -> None:
        while not self._cancelled.is_set():
            url = frontier.pop(self.options.max_pages)
            if url is None:
                return

            page: CrawledPage | None = None
            try:
                page = self._process_url(frontier, url)
            except Exception as exc:
                # Progress callback errors abort the crawl and re-raise from crawl().
                self._fail(exc)
            finally:
                frontier.complete(page)
                if page is not None and self.stats is not None:
                    self.stats.record_page(page)

    def _fail(self, exc: BaseException) -> None:
        with self._error_lock:
            if self._callback_error is None:
                self._callback_error = exc
        self.cancel()

    def _record_error(self, stage: CrawlStage, url: str, exc: Exception) -> None:
        record = ErrorRecord.from_exception(stage=stage, url=url, exc=exc)
        with self._error_lock:
            self._error_records.append(record)

    def _process_url(self, frontier: Frontier, url: str) -> CrawledPage | None:
        if self.options.on_progress is not None:
            self.options.on_progress(frontier.progress(url))

        if self._cancelled.is_set():
            return None

        try:
            fetch_result = self.fetcher.fetch_page(url, self.options.timeout_ms)
        except Exception as exc:
            LOGGER.warning("Fetch failed for %s: %s", url, exc)
            self._record_error(CrawlStage.FETCH, url, exc)
            if self.stats is not None:
                self.stats.record_fetch_error(exc)
            return CrawledPage(url=url, context=PageContext.empty(url), error=str(exc) or exc.__class__.__name__)

        if self.stats is not None:
            self.stats.record_fetch(fetch_result)

        cwv = self._collect_vitals(url)

        try:
            context = self.html_parser.parse(url=url, fetch_result=fetch_result, cwv=cwv)
        except Exception as exc:
            LOGGER.warning("Extraction failed for %s: %s", url, exc)
            self._record_error(CrawlStage.EXTRACT, url, exc)
            return CrawledPage(
                url=url,
                context=PageContext.empty(url),
                error=f"Extraction failed: {exc.__class__.__name__}: {exc}",
            )

        self._discover_urls(frontier, context)
        return CrawledPage(url=url, context=context)

    def _collect_vitals(self, url: str) -> CoreWebVitals:
        callback = self.options.get_core_web_vitals
        if callback is None:
            return CoreWebVitals()

        try:
            value = callback(url)
        except Exception as exc:
            LOGGER.debug("Core Web Vitals unavailable for %s: %s", url, exc)
            self._record_error(CrawlStage.VITALS, url, exc)
            if self.stats is not None:
                self.stats.increment("vitals_failed")
            return CoreWebVitals()

        if isinstance(value, CoreWebVitals):
            return value
        return CoreWebVitals.from_mapping(dict(value or {}))

    def _discover_urls(self, frontier: Frontier, context: PageContext) -> None:
        for link in context.links:
            if not link.is_internal or link.is_nofollow:
                continue
            result = frontier.push(link.href)
            if self.stats is not None:
                self.stats.record_enqueue(result)
            if result.accepted:
                LOGGER.debug("Queued %s (from %s)", result.normalized_url, context.url)


def create_crawler(
    options: CrawlerOptions | None = None,
    **overrides: Any,
) -> Crawler:
    """Build a `Crawler`, e.g. `create_crawler(max_pages=50, concurrency=5)`."""

    base = options or CrawlerOptions()
    if isinstance(overrides.get("url_filter"), Mapping):
        overrides["url_filter"] = UrlFilterOptions.from_mapping(overrides["url_filter"])
    return Crawler(replace(base, **overrides))


__all__ = [
    "Crawler",
    "CrawlerOptions",
    "ProgressCallback",
    "VitalsCallback",
    "create_crawler",
]
