"""Filesystem-backed storage for crawl results and manifests.

Storage owns the on-disk layout. Other modules should use this API instead of
building paths manually.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import CrawlConfig
from .constants import JSON_INDENT
from .types import CrawledPage, CrawlStats, ErrorRecord, JSONDict


def page_summary(page: CrawledPage) -> JSONDict:
    """Compact per-page row for `pages.jsonl`; the parsed document is not stored."""

    context = page.context
    return {
        "url": page.url,
        "error": page.error,
        "completed_at": page.completed_at,
        "status_code": context.status_code,
        "elapsed_ms": context.elapsed_ms,
        "headers": dict(context.headers),
        "cwv": context.cwv.to_json(),
        "html_bytes": len(context.html.encode("utf-8", errors="replace")),
        "counts": {
            "links": len(context.links),
            "internal_links": sum(1 for link in context.links if link.is_internal),
            "nofollow_links": sum(1 for link in context.links if link.is_nofollow),
            "invalid_links": len(context.invalid_links),
            "special_links": len(context.special_links),
            "images": len(context.images),
            "images_missing_alt": sum(1 for image in context.images if not image.has_alt),
            "figures": len(context.figures),
            "inline_svgs": len(context.inline_svgs),
            "picture_elements": len(context.picture_elements),
        },
    }


class Storage:
    """Persist crawl outputs under a single `output_dir` root.

    Each instance records one crawl run. Opening it removes the per-run files
    (`pages.jsonl`, `errors.jsonl`, `visited_urls.txt`) left by an earlier run
    in the same directory. The config and stats manifests are replaced when saved.
    """

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)

        self.manifests_dir = self.output_dir / "manifests"
        self.logs_dir = self.output_dir / "logs"

        self.pages_path = self.output_dir / "pages.jsonl"
        self.errors_path = self.output_dir / "errors.jsonl"
        self.visited_urls_path = self.manifests_dir / "visited_urls.txt"
        self.crawl_config_path = self.manifests_dir / "crawl_config.json"
        self.crawl_stats_path = self.manifests_dir / "crawl_stats.json"

        self._jsonl_lock = threading.Lock()
        self._state_lock = threading.Lock()

        self._visited_urls: set[str] = set()

        self._ensure_layout()
        self._reset_run_files()

    @property
    def paths(self) -> JSONDict:
        """Return important output paths for logging/CLI status messages."""

        return {
            "output_dir": str(self.output_dir),
            "pages": str(self.pages_path),
            "errors": str(self.errors_path),
            "visited_urls": str(self.visited_urls_path),
            "crawl_config": str(self.crawl_config_path),
            "crawl_stats": str(self.crawl_stats_path),
            "log_dir": str(self.logs_dir),
        }

    def _ensure_layout(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.manifests_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def _reset_run_files(self) -> None:
        for path in (self.pages_path, self.errors_path, self.visited_urls_path):
            path.unlink(missing_ok=True)

    def save_page(self, page: CrawledPage) -> None:
        """Append one page summary to `pages.jsonl`."""

        self._append_jsonl(self.pages_path, page_summary(page))

    def save_pages(self, pages: Iterable[CrawledPage]) -> int:
        count = 0
        for page in pages:
            self.save_page(page)
            count += 1
        return count

    def save_error(self, record: ErrorRecord) -> None:
        """Append error record to `errors.jsonl`."""

        self._append_jsonl(self.errors_path, record.to_json())

    def mark_visited_many(self, urls: Iterable[str]) -> int:
        """Persist many visited URLs and return how many were newly added."""

        new_urls: list[str] = []
        with self._state_lock:
            for url in urls:
                if url in self._visited_urls:
                    continue
                self._visited_urls.add(url)
                new_urls.append(url)

        if not new_urls:
            return 0

        with self._jsonl_lock:
            with self.visited_urls_path.open("a", encoding="utf-8") as handle:
                for url in sorted(new_urls):
                    handle.write(url + "\n")
        return len(new_urls)

    def visited_urls(self) -> set[str]:
        """Return snapshot copy of known visited URLs."""

        with self._state_lock:
            return set(self._visited_urls)

    def save_crawl_config(self, config: CrawlConfig | Mapping[str, Any]) -> None:
        """Write crawl config manifest atomically as JSON."""

        payload: Mapping[str, Any]
        if isinstance(config, CrawlConfig):
            payload = config.to_dict()
        else:
            payload = config
        self._atomic_write_json(self.crawl_config_path, dict(payload))

    def save_crawl_stats(self, stats: CrawlStats | Mapping[str, Any]) -> None:
        """Write crawl stats manifest atomically as JSON."""

        payload: Mapping[str, Any]
        if isinstance(stats, CrawlStats):
            payload = stats.to_json()
        else:
            payload = stats
        self._atomic_write_json(self.crawl_stats_path, dict(payload))

    def _append_jsonl(self, path: Path, payload: Mapping[str, Any]) -> None:
        line = json.dumps(payload, ensure_ascii=False, sort_keys=True)
        with self._jsonl_lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    @staticmethod
    def _atomic_write_json(path: Path, payload: Mapping[str, Any]) -> None:
        content = json.dumps(payload, ensure_ascii=False, indent=JSON_INDENT, sort_keys=True) + "\n"
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=".tmp",
        )
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise


__all__ = ["Storage", "page_summary"]
