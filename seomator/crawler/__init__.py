"""Crawler package: URL rules, fetching, extraction, and the crawl loop."""

from .config import CrawlConfig, load_config, save_config
from .crawler import Crawler, CrawlerOptions, create_crawler
from .errors import CrawlerError, FetchError, FetchTimeoutError, InvalidStartUrlError
from .fetcher import Fetcher, fetch_page, fetch_url, fetch_url_with_redirects, parse_document
from .frontier import EnqueueResult, EnqueueStatus, Frontier
from .glob import GlobPattern, compile_glob, glob_to_regex
from .parsers import HTMLParser, HTMLParserConfig, build_page_context
from .stats import StatsCollector
from .storage import Storage
from .types import (
    CoreWebVitals,
    CrawlProgress,
    CrawlStage,
    CrawlStats,
    CrawledPage,
    ErrorRecord,
    ExtractedLink,
    FetchResult,
    FigureInfo,
    ImageInfo,
    InlineSvgInfo,
    InvalidLink,
    InvalidLinkReason,
    PageContext,
    PictureElementInfo,
    RedirectResult,
    SpecialLink,
    SpecialLinkType,
    utc_now_iso,
)
from .url import UrlFilter, UrlFilterOptions, create_url_filter, host_from_url, resolve_path

__all__ = [
    "CoreWebVitals",
    "CrawlConfig",
    "CrawlProgress",
    "CrawlStage",
    "CrawlStats",
    "CrawledPage",
    "Crawler",
    "CrawlerError",
    "CrawlerOptions",
    "EnqueueResult",
    "EnqueueStatus",
    "ErrorRecord",
    "ExtractedLink",
    "FetchError",
    "FetchResult",
    "FetchTimeoutError",
    "Fetcher",
    "FigureInfo",
    "Frontier",
    "GlobPattern",
    "HTMLParser",
    "HTMLParserConfig",
    "ImageInfo",
    "InlineSvgInfo",
    "InvalidLink",
    "InvalidLinkReason",
    "InvalidStartUrlError",
    "PageContext",
    "PictureElementInfo",
    "RedirectResult",
    "SpecialLink",
    "SpecialLinkType",
    "StatsCollector",
    "Storage",
    "UrlFilter",
    "UrlFilterOptions",
    "build_page_context",
    "compile_glob",
    "create_crawler",
    "create_url_filter",
    "fetch_page",
    "fetch_url",
    "fetch_url_with_redirects",
    "glob_to_regex",
    "host_from_url",
    "load_config",
    "parse_document",
    "resolve_path",
    "save_config",
    "utc_now_iso",
]
