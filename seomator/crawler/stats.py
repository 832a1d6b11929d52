"""Thread-safe crawl statistics aggregation utilities."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
import threading
from typing import Any

from .frontier import EnqueueResult, EnqueueStatus
from .types import CrawledPage, CrawlStats, FetchResult


class StatsCollector:
    """Collect and summarize crawler runtime statistics.

    The collector is thread-safe and intended for use across concurrent
    crawl workers.
    """

    def __init__(self, base: CrawlStats | None = None) -> None:
        self._lock = threading.Lock()
        self._core = base or CrawlStats()

        self._frontier_status_counts: dict[str, int] = defaultdict(int)
        self._frontier_snapshot: dict[str, int | bool] = {}

        self._fetch_status_code_counts: dict[str, int] = defaultdict(int)
        self._fetch_error_type_counts: dict[str, int] = defaultdict(int)
        self._fetch_elapsed_ms_total = 0
        self._fetch_elapsed_samples = 0
        self._fetch_bytes_total = 0

        self._links_total = 0
        self._invalid_links_total = 0
        self._images_total = 0

        self._custom_counters: dict[str, int] = defaultdict(int)

    def record_enqueue(self, result_or_status: EnqueueResult | EnqueueStatus) -> None:
        """Record one frontier enqueue outcome."""

        if isinstance(result_or_status, EnqueueResult):
            status = result_or_status.status
        else:
            status = result_or_status

        with self._lock:
            self._frontier_status_counts[status.value] += 1
            if status == EnqueueStatus.ENQUEUED:
                self._core.frontier_enqueued += 1
            elif status == EnqueueStatus.SKIPPED_SEEN:
                self._core.frontier_skipped_visited += 1
            elif status in {
                EnqueueStatus.SKIPPED_OFF_DOMAIN,
                EnqueueStatus.SKIPPED_NON_HTML,
                EnqueueStatus.SKIPPED_FILTERED,
            }:
                self._core.frontier_skipped_filtered += 1

    def record_frontier_snapshot(self, snapshot: dict[str, int | bool]) -> None:
        """Attach latest frontier snapshot for diagnostics."""

        with self._lock:
            self._frontier_snapshot = dict(snapshot)

    def record_fetch(self, result: FetchResult) -> None:
        """Record one completed GET."""

        with self._lock:
            self._fetch_status_code_counts[str(result.status_code)] += 1
            self._fetch_elapsed_ms_total += int(result.elapsed_ms)
            self._fetch_elapsed_samples += 1
            self._fetch_bytes_total += len(result.html.encode("utf-8", errors="replace"))

    def record_fetch_error(self, exc: Exception) -> None:
        with self._lock:
            self._fetch_error_type_counts[exc.__class__.__name__] += 1

    def record_page(self, page: CrawledPage) -> None:
        """Record one entry appended to the crawl results."""

        with self._lock:
            if page.ok:
                self._core.pages_ok += 1
            else:
                self._core.pages_failed += 1
            self._links_total += len(page.context.links)
            self._invalid_links_total += len(page.context.invalid_links)
            self._images_total += len(page.context.images)

    def increment(self, name: str, value: int = 1) -> None:
        """Increment a custom counter for ad-hoc instrumentation."""

        if not name or value == 0:
            return
        with self._lock:
            self._custom_counters[name] += value

    def finish(self) -> None:
        """Mark crawl as finished."""

        with self._lock:
            self._core.finish()

    def core(self) -> CrawlStats:
        """Return a copy of the core `CrawlStats` record."""

        with self._lock:
            return CrawlStats(
                frontier_enqueued=self._core.frontier_enqueued,
                frontier_skipped_visited=self._core.frontier_skipped_visited,
                frontier_skipped_filtered=self._core.frontier_skipped_filtered,
                pages_ok=self._core.pages_ok,
                pages_failed=self._core.pages_failed,
                started_at=self._core.started_at,
                finished_at=self._core.finished_at,
            )

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary payload."""

        with self._lock:
            core = self._core.to_json()

            start = _parse_iso_utc(self._core.started_at)
            end = _parse_iso_utc(self._core.finished_at) if self._core.finished_at else datetime.now(
                timezone.utc
            )
            duration_seconds = max(0.0, (end - start).total_seconds())

            fetch_elapsed_avg = (
                self._fetch_elapsed_ms_total / self._fetch_elapsed_samples
                if self._fetch_elapsed_samples > 0
                else 0.0
            )
            pages_total = self._core.pages_ok + self._core.pages_failed

            return {
                **core,
                "pages_total": pages_total,
                "duration_seconds": duration_seconds,
                "pages_per_second": pages_total / duration_seconds if duration_seconds > 0 else 0.0,
                "frontier": {
                    "status_counts": dict(self._frontier_status_counts),
                    "snapshot": dict(self._frontier_snapshot),
                },
                "fetch": {
                    "status_code_counts": dict(self._fetch_status_code_counts),
                    "error_type_counts": dict(self._fetch_error_type_counts),
                    "elapsed_ms_total": self._fetch_elapsed_ms_total,
                    "elapsed_ms_samples": self._fetch_elapsed_samples,
                    "elapsed_ms_avg": fetch_elapsed_avg,
                    "bytes_total": self._fetch_bytes_total,
                },
                "extract": {
                    "links_total": self._links_total,
                    "invalid_links_total": self._invalid_links_total,
                    "images_total": self._images_total,
                },
                "custom_counters": dict(self._custom_counters),
            }


def _parse_iso_utc(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["StatsCollector"]
