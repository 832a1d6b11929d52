"""Core type definitions for the crawler.

Records here are shared by the fetcher, the HTML extraction pipeline, the
frontier, and storage. Only `PageContext` and `FetchResult` hold a parsed
document; everything else is plain data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from bs4 import BeautifulSoup


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now_iso() -> str:
    """Return an RFC3339-like UTC timestamp string for manifests/JSONL."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def empty_document() -> BeautifulSoup:
    return BeautifulSoup("", "lxml")


class CrawlStage(str, Enum):
    """Crawl stage names for error reporting."""

    FETCH = "fetch"
    EXTRACT = "extract"
    VITALS = "vitals"


class InvalidLinkReason(str, Enum):
    EMPTY = "empty"
    JAVASCRIPT = "javascript"
    MALFORMED = "malformed"


class SpecialLinkType(str, Enum):
    TEL = "tel"
    MAILTO = "mailto"


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Result of one successful GET of a page."""

    url: str
    html: str
    document: BeautifulSoup = field(repr=False, compare=False)
    headers: dict[str, str] = field(default_factory=dict)
    status_code: int = 0
    elapsed_ms: int = 0

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)


@dataclass(frozen=True, slots=True)
class ExtractedLink:
    """A followable anchor, with `href` resolved against the page URL."""

    href: str
    text: str
    is_internal: bool
    is_nofollow: bool

    def to_json(self) -> JSONDict:
        return {
            "href": self.href,
            "text": self.text,
            "is_internal": self.is_internal,
            "is_nofollow": self.is_nofollow,
        }


@dataclass(frozen=True, slots=True)
class InvalidLink:
    href: str
    reason: InvalidLinkReason
    text: str

    def to_json(self) -> JSONDict:
        return {"href": self.href, "reason": self.reason.value, "text": self.text}


@dataclass(frozen=True, slots=True)
class SpecialLink:
    """A `tel:` or `mailto:` anchor with lightweight format validation."""

    type: SpecialLinkType
    href: str
    value: str
    text: str
    is_valid: bool
    issue: str | None = None

    def to_json(self) -> JSONDict:
        return {
            "type": self.type.value,
            "href": self.href,
            "value": self.value,
            "text": self.text,
            "is_valid": self.is_valid,
            "issue": self.issue,
        }


@dataclass(frozen=True, slots=True)
class ImageInfo:
    src: str
    alt: str
    has_alt: bool
    width: str | None = None
    height: str | None = None
    is_lazy_loaded: bool = False

    def to_json(self) -> JSONDict:
        return {
            "src": self.src,
            "alt": self.alt,
            "has_alt": self.has_alt,
            "width": self.width,
            "height": self.height,
            "is_lazy_loaded": self.is_lazy_loaded,
        }


@dataclass(frozen=True, slots=True)
class FigureInfo:
    has_figcaption: bool
    image_count: int
    caption_text: str | None = None

    def to_json(self) -> JSONDict:
        return {
            "has_figcaption": self.has_figcaption,
            "image_count": self.image_count,
            "caption_text": self.caption_text,
        }


@dataclass(frozen=True, slots=True)
class InlineSvgInfo:
    size_bytes: int
    has_viewbox: bool
    has_title: bool
    snippet: str

    def to_json(self) -> JSONDict:
        return {
            "size_bytes": self.size_bytes,
            "has_viewbox": self.has_viewbox,
            "has_title": self.has_title,
            "snippet": self.snippet,
        }


@dataclass(frozen=True, slots=True)
class PictureElementInfo:
    has_img_fallback: bool
    source_count: int
    img_src: str | None = None
    source_types: list[str] = field(default_factory=list)

    def to_json(self) -> JSONDict:
        return {
            "has_img_fallback": self.has_img_fallback,
            "source_count": self.source_count,
            "img_src": self.img_src,
            "source_types": list(self.source_types),
        }


@dataclass(frozen=True, slots=True)
class CoreWebVitals:
    """Core Web Vitals in milliseconds (CLS is unitless). Missing metrics are None."""

    lcp: float | None = None
    fid: float | None = None
    cls: float | None = None
    ttfb: float | None = None
    fcp: float | None = None
    inp: float | None = None

    def to_json(self) -> JSONDict:
        return {
            key: value
            for key, value in (
                ("lcp", self.lcp),
                ("fid", self.fid),
                ("cls", self.cls),
                ("ttfb", self.ttfb),
                ("fcp", self.fcp),
                ("inp", self.inp),
            )
            if value is not None
        }

    @classmethod
    def from_mapping(cls, payload: dict[str, Any] | None) -> "CoreWebVitals":
        payload = payload or {}

        def _metric(key: str) -> float | None:
            value = payload.get(key)
            if value is None:
                return None
            try:
                return float(value)
            except (TypeError, ValueError):
                return None

        return cls(
            lcp=_metric("lcp"),
            fid=_metric("fid"),
            cls=_metric("cls"),
            ttfb=_metric("ttfb"),
            fcp=_metric("fcp"),
            inp=_metric("inp"),
        )


@dataclass(frozen=True, slots=True)
class RedirectResult:
    """Outcome of following a redirect chain by hand.

    `status_code == 0` means the chain could not be resolved (network failure or
    too many hops); `chain` then holds every URL reached so far.
    """

    final_url: str
    status_code: int
    redirect_count: int
    chain: list[str] = field(default_factory=list)

    def to_json(self) -> JSONDict:
        return {
            "final_url": self.final_url,
            "status_code": self.status_code,
            "redirect_count": self.redirect_count,
            "chain": list(self.chain),
        }


@dataclass(slots=True)
class PageContext:
    """Everything known about one crawled page.

    Optional slots at the bottom are filled in by collaborators (redirect checker,
    robots/sitemap loaders, renderer) before rule evaluation; the crawler itself
    only fills the fetch/extraction fields.
    """

    url: str
    html: str
    document: BeautifulSoup = field(repr=False)
    headers: dict[str, str] = field(default_factory=dict)
    status_code: int = 0
    elapsed_ms: int = 0
    cwv: CoreWebVitals = field(default_factory=CoreWebVitals)
    links: list[ExtractedLink] = field(default_factory=list)
    invalid_links: list[InvalidLink] = field(default_factory=list)
    special_links: list[SpecialLink] = field(default_factory=list)
    images: list[ImageInfo] = field(default_factory=list)
    figures: list[FigureInfo] = field(default_factory=list)
    inline_svgs: list[InlineSvgInfo] = field(default_factory=list)
    picture_elements: list[PictureElementInfo] = field(default_factory=list)

    redirect_chain: RedirectResult | None = None
    robots_txt_content: str | None = None
    sitemap_content: str | None = None
    sitemap_urls: list[str] | None = None
    rendered_html: str | None = None

    @classmethod
    def empty(cls, url: str) -> "PageContext":
        """Placeholder context for a page whose fetch failed."""

        return cls(url=url, html="", document=empty_document())

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "status_code": self.status_code,
            "elapsed_ms": self.elapsed_ms,
            "headers": dict(self.headers),
            "cwv": self.cwv.to_json(),
            "links": [link.to_json() for link in self.links],
            "invalid_links": [link.to_json() for link in self.invalid_links],
            "special_links": [link.to_json() for link in self.special_links],
            "images": [image.to_json() for image in self.images],
            "figures": [figure.to_json() for figure in self.figures],
            "inline_svgs": [svg.to_json() for svg in self.inline_svgs],
            "picture_elements": [picture.to_json() for picture in self.picture_elements],
            "redirect_chain": None if self.redirect_chain is None else self.redirect_chain.to_json(),
        }


@dataclass(frozen=True, slots=True)
class CrawledPage:
    """One entry of a crawl's result sequence."""

    url: str
    context: PageContext
    error: str | None = None
    completed_at: str = field(default_factory=utc_now_iso)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "error": self.error,
            "completed_at": self.completed_at,
            **{key: value for key, value in self.context.to_json().items() if key != "url"},
        }


@dataclass(frozen=True, slots=True)
class CrawlProgress:
    """Snapshot passed to the progress callback before each fetch."""

    crawled: int
    total: int
    current_url: str
    discovered: int


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One error row written to errors.jsonl."""

    stage: CrawlStage
    url: str
    message: str
    error_type: str | None = None
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_exception(cls, *, stage: CrawlStage, url: str, exc: Exception) -> "ErrorRecord":
        return cls(
            stage=stage,
            url=url,
            message=str(exc),
            error_type=exc.__class__.__name__,
        )

    def to_json(self) -> JSONDict:
        return {
            "stage": self.stage.value,
            "url": self.url,
            "message": self.message,
            "error_type": self.error_type,
            "created_at": self.created_at,
        }


@dataclass(slots=True)
class CrawlStats:
    """Simple mutable counters used for crawl summary reporting."""

    frontier_enqueued: int = 0
    frontier_skipped_visited: int = 0
    frontier_skipped_filtered: int = 0

    pages_ok: int = 0
    pages_failed: int = 0

    started_at: str = field(default_factory=utc_now_iso)
    finished_at: str | None = None

    def finish(self) -> None:
        self.finished_at = utc_now_iso()

    def to_json(self) -> JSONDict:
        return {
            "frontier_enqueued": self.frontier_enqueued,
            "frontier_skipped_visited": self.frontier_skipped_visited,
            "frontier_skipped_filtered": self.frontier_skipped_filtered,
            "pages_ok": self.pages_ok,
            "pages_failed": self.pages_failed,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


__all__ = [
    "CoreWebVitals",
    "CrawlProgress",
    "CrawlStage",
    "CrawlStats",
    "CrawledPage",
    "ErrorRecord",
    "ExtractedLink",
    "FetchResult",
    "FigureInfo",
    "ImageInfo",
    "InlineSvgInfo",
    "InvalidLink",
    "InvalidLinkReason",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "PageContext",
    "PictureElementInfo",
    "RedirectResult",
    "SpecialLink",
    "SpecialLinkType",
    "empty_document",
    "utc_now_iso",
]
