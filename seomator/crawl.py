"""CLI entrypoint for crawling one site."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any

from seomator.crawler import (
    CrawlConfig,
    CrawlProgress,
    CrawledPage,
    Crawler,
    CrawlerOptions,
    ErrorRecord,
    Fetcher,
    InvalidStartUrlError,
    StatsCollector,
    Storage,
    load_config,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl a site and record per-page SEO audit inputs.",
    )

    parser.add_argument("url", help="Start URL; only its exact host is crawled.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML crawl config.",
    )
    parser.add_argument(
        "--output_dir",
        type=Path,
        default=Path("seomator_output"),
        help="Root output directory for pages/errors/manifests/logs.",
    )

    parser.add_argument("--max_pages", type=int, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--timeout_ms", type=int, default=None)
    parser.add_argument("--user_agent", type=str, default=None)

    parser.add_argument(
        "--include",
        action="append",
        default=[],
        help="Path glob to crawl (repeatable). Overrides config includes if provided.",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Path glob to skip (repeatable). Overrides config excludes if provided.",
    )
    parser.add_argument(
        "--allow_query_param",
        action="append",
        default=[],
        help="Query parameter kept during normalization (repeatable).",
    )

    parser.add_argument(
        "--vitals",
        action="store_true",
        help="Measure Core Web Vitals in a headless browser (needs Chrome or Firefox).",
    )
    parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print full stats JSON in stdout after run.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CrawlConfig:
    if args.config is not None:
        payload = load_config(args.config).to_dict()
    else:
        payload = {}

    if args.max_pages is not None:
        payload["max_pages"] = args.max_pages
    if args.concurrency is not None:
        payload["concurrency"] = args.concurrency
    if args.timeout_ms is not None:
        payload["timeout_ms"] = args.timeout_ms
    if args.user_agent is not None:
        payload["user_agent"] = args.user_agent

    if args.include:
        payload["include"] = list(args.include)
    if args.exclude:
        payload["exclude"] = list(args.exclude)
    if args.allow_query_param:
        payload["allow_query_params"] = list(args.allow_query_param)

    if args.vitals:
        payload["collect_vitals"] = True

    return CrawlConfig.from_dict(payload)


def setup_logging(output_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "crawl.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # Connection-pool chatter drowns out per-page debug lines.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("selenium").setLevel(logging.WARNING)


def log_progress(progress: CrawlProgress) -> None:
    logging.info(
        "[%d/%d] %s (discovered=%d)",
        progress.crawled + 1,
        progress.total,
        progress.current_url,
        progress.discovered,
    )


def persist_results(
    storage: Storage,
    pages: list[CrawledPage],
    errors: list[ErrorRecord],
    visited: set[str],
) -> None:
    storage.save_pages(pages)
    for record in errors:
        storage.save_error(record)
    storage.mark_visited_many(visited)


def print_summary(result: dict[str, Any], *, print_stats_json: bool) -> None:
    paths = result.get("paths", {})
    stats = result.get("stats", {})

    print("\n=== Crawl Complete ===")
    print(f"start_url: {result.get('start_url')}")
    print(f"output_dir: {paths.get('output_dir')}")
    print(f"pages: {paths.get('pages')}")
    print(f"errors: {paths.get('errors')}")
    print(f"stats: {paths.get('crawl_stats')}")

    print("\n--- Core Stats ---")
    for key in [
        "pages_total",
        "pages_ok",
        "pages_failed",
        "frontier_enqueued",
        "frontier_skipped_visited",
        "frontier_skipped_filtered",
        "duration_seconds",
    ]:
        if key in stats:
            print(f"{key}: {stats[key]}")

    if print_stats_json:
        print("\n--- Full Stats JSON ---")
        print(json.dumps(stats, indent=2, sort_keys=True))


def run(config: CrawlConfig, start_url: str, output_dir: Path) -> dict[str, Any]:
    storage = Storage(output_dir)
    storage.save_crawl_config(config)
    stats = StatsCollector()

    vitals_provider = None
    if config.collect_vitals:
        from seomator.crawler.vitals import SeleniumVitalsProvider

        vitals_provider = SeleniumVitalsProvider(
            timeout_ms=config.timeout_ms,
            user_agent=config.user_agent,
        )

    options = CrawlerOptions.from_config(
        config,
        on_progress=log_progress,
        get_core_web_vitals=vitals_provider,
    )

    with Fetcher(config) as fetcher:
        crawler = Crawler(options, fetcher=fetcher, stats=stats)
        try:
            pages = crawler.crawl(start_url)
        finally:
            if vitals_provider is not None:
                vitals_provider.close()

    persist_results(storage, pages, crawler.errors(), crawler.visited_urls())
    stats_payload = stats.to_json()
    storage.save_crawl_stats(stats_payload)

    return {
        "start_url": start_url,
        "paths": storage.paths,
        "stats": stats_payload,
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.output_dir, verbose=args.verbose)

    try:
        config = build_config(args)
    except Exception as exc:
        logging.error("Failed to build config: %s", exc)
        return 2

    logging.info(
        "Starting crawl: url=%s, output_dir=%s, max_pages=%d, concurrency=%d",
        args.url,
        args.output_dir,
        config.max_pages,
        config.concurrency,
    )

    try:
        result = run(config, args.url, args.output_dir)
    except InvalidStartUrlError as exc:
        logging.error("%s", exc)
        return 2
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        return 130
    except Exception:
        logging.exception("Crawl failed")
        return 1

    print_summary(result, print_stats_json=args.print_stats_json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
