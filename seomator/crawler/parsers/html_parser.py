"""HTML signal extraction: links, special links, images, figures, SVGs, pictures.

Every `extract_*` function is pure over an already parsed document. Relative
URLs are resolved against the page URL; nothing here performs network I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from ..constants import MAX_CAPTION_CHARS, MAX_LINK_TEXT_CHARS, SVG_SNIPPET_CHARS
from ..types import (
    CoreWebVitals,
    ExtractedLink,
    FetchResult,
    FigureInfo,
    ImageInfo,
    InlineSvgInfo,
    InvalidLink,
    InvalidLinkReason,
    PageContext,
    PictureElementInfo,
    SpecialLink,
    SpecialLinkType,
)
from ..url import host_from_url


_JAVASCRIPT_RE = re.compile(r"^javascript:", re.IGNORECASE)
_DIVERTED_SCHEME_RE = re.compile(r"^(mailto:|tel:|data:)", re.IGNORECASE)
_TEL_RE = re.compile(r"^tel:", re.IGNORECASE)
_MAILTO_RE = re.compile(r"^mailto:", re.IGNORECASE)
_PHONE_STRIP_RE = re.compile(r"[\s\-()+.]")
_PHONE_DIGITS_RE = re.compile(r"\d{7,15}")
_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_WHITESPACE_RE = re.compile(r"\s")


def _attr(element: Tag, name: str) -> str | None:
    value = element.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


def _anchor_text(element: Tag) -> str:
    text = element.get_text().strip() or _attr(element, "title") or ""
    return text[:MAX_LINK_TEXT_CHARS]


def resolve_href(base_url: str, href: str) -> str | None:
    """Resolve `href` against `base_url`; None when the result is not a usable URL."""

    try:
        resolved = urljoin(base_url, href.strip())
        parsed = urlsplit(resolved)
        parsed.port  # raises ValueError for non-numeric ports
    except ValueError:
        return None

    if _WHITESPACE_RE.search(parsed.netloc):
        return None
    if parsed.scheme.lower() in {"http", "https"} and not parsed.hostname:
        return None
    if not parsed.scheme:
        return None
    return resolved


def extract_links(
    document: BeautifulSoup,
    base_url: str,
) -> tuple[list[ExtractedLink], list[InvalidLink]]:
    """Split anchors into followable links and invalid ones.

    `tel:`, `mailto:` and `data:` anchors are left to `extract_special_links`.
    """

    links: list[ExtractedLink] = []
    invalid: list[InvalidLink] = []
    base_host = host_from_url(base_url)

    for element in document.find_all("a", href=True):
        href = _attr(element, "href") or ""
        text = _anchor_text(element)
        candidate = href.strip()

        if not candidate or candidate == "#":
            invalid.append(InvalidLink(href=href, reason=InvalidLinkReason.EMPTY, text=text))
            continue

        if _JAVASCRIPT_RE.match(candidate):
            invalid.append(InvalidLink(href=href, reason=InvalidLinkReason.JAVASCRIPT, text=text))
            continue

        if _DIVERTED_SCHEME_RE.match(candidate):
            continue

        resolved = resolve_href(base_url, candidate)
        if resolved is None:
            invalid.append(InvalidLink(href=href, reason=InvalidLinkReason.MALFORMED, text=text))
            continue

        rel = (_attr(element, "rel") or "").lower()
        links.append(
            ExtractedLink(
                href=resolved,
                text=text,
                is_internal=host_from_url(resolved) == base_host,
                is_nofollow="nofollow" in rel,
            )
        )

    return links, invalid


def validate_email(email: str) -> tuple[bool, str | None]:
    if not email:
        return False, "Empty email address"
    if not _EMAIL_RE.fullmatch(email):
        return False, "Invalid email format"
    return True, None


def validate_phone(phone: str) -> tuple[bool, str | None]:
    """Accept 7-15 digits once spaces, dashes, parens, dots and `+` are removed."""

    if not phone:
        return False, "Empty phone number"
    if not _PHONE_DIGITS_RE.fullmatch(_PHONE_STRIP_RE.sub("", phone)):
        return False, "Invalid phone format (should be 7-15 digits)"
    return True, None


def extract_special_links(document: BeautifulSoup) -> list[SpecialLink]:
    special: list[SpecialLink] = []

    for element in document.find_all("a", href=True):
        href = _attr(element, "href") or ""
        if not href:
            continue

        if _TEL_RE.match(href):
            value = _TEL_RE.sub("", href)
            is_valid, issue = validate_phone(value)
            link_type = SpecialLinkType.TEL
        elif _MAILTO_RE.match(href):
            value = _MAILTO_RE.sub("", href).split("?", maxsplit=1)[0]
            is_valid, issue = validate_email(value)
            link_type = SpecialLinkType.MAILTO
        else:
            continue

        special.append(
            SpecialLink(
                type=link_type,
                href=href,
                value=value,
                text=_anchor_text(element),
                is_valid=is_valid,
                issue=issue,
            )
        )

    return special


def extract_images(document: BeautifulSoup, base_url: str) -> list[ImageInfo]:
    """Collect `<img>` elements; `data:` and empty sources are skipped entirely."""

    images: list[ImageInfo] = []

    for element in document.find_all("img"):
        src = _attr(element, "src") or _attr(element, "data-src") or ""
        if not src or src.startswith("data:"):
            continue

        try:
            resolved = urljoin(base_url, src)
        except ValueError:
            resolved = src

        alt = _attr(element, "alt")
        images.append(
            ImageInfo(
                src=resolved,
                alt=alt or "",
                has_alt=alt is not None,
                width=_attr(element, "width"),
                height=_attr(element, "height"),
                is_lazy_loaded=_attr(element, "loading") == "lazy" or element.has_attr("data-src"),
            )
        )

    return images


def extract_figures(document: BeautifulSoup) -> list[FigureInfo]:
    figures: list[FigureInfo] = []

    for element in document.find_all("figure"):
        captions = element.find_all("figcaption")
        caption_text = "".join(caption.get_text() for caption in captions).strip()
        figures.append(
            FigureInfo(
                has_figcaption=bool(captions),
                image_count=len(element.find_all("img")),
                caption_text=caption_text[:MAX_CAPTION_CHARS] or None,
            )
        )

    return figures


def extract_inline_svgs(document: BeautifulSoup) -> list[InlineSvgInfo]:
    svgs: list[InlineSvgInfo] = []

    for element in document.find_all("svg"):
        markup = str(element)
        svgs.append(
            InlineSvgInfo(
                size_bytes=len(markup.encode("utf-8")),
                # lxml's HTML parser lowercases attribute names.
                has_viewbox=element.has_attr("viewBox") or element.has_attr("viewbox"),
                has_title=element.find("title") is not None,
                snippet=markup[:SVG_SNIPPET_CHARS],
            )
        )

    return svgs


def extract_picture_elements(document: BeautifulSoup) -> list[PictureElementInfo]:
    pictures: list[PictureElementInfo] = []

    for element in document.find_all("picture"):
        img = element.find("img")
        sources = element.find_all("source")
        pictures.append(
            PictureElementInfo(
                has_img_fallback=img is not None,
                source_count=len(sources),
                img_src=None if img is None else _attr(img, "src"),
                source_types=[
                    source_type
                    for source_type in (_attr(source, "type") for source in sources)
                    if source_type
                ],
            )
        )

    return pictures


@dataclass(slots=True)
class HTMLParserConfig:
    """Config for HTML extraction."""

    extract_media: bool = True


class HTMLParser:
    """Turn a `FetchResult` into a fully populated `PageContext`."""

    def __init__(self, config: HTMLParserConfig | None = None) -> None:
        self.config = config or HTMLParserConfig()

    def parse(
        self,
        *,
        url: str,
        fetch_result: FetchResult,
        cwv: CoreWebVitals | None = None,
    ) -> PageContext:
        document = fetch_result.document
        links, invalid_links = extract_links(document, url)

        context = PageContext(
            url=url,
            html=fetch_result.html,
            document=document,
            headers=dict(fetch_result.headers),
            status_code=fetch_result.status_code,
            elapsed_ms=fetch_result.elapsed_ms,
            cwv=cwv or CoreWebVitals(),
            links=links,
            invalid_links=invalid_links,
            special_links=extract_special_links(document),
        )

        if self.config.extract_media:
            context.images = extract_images(document, url)
            context.figures = extract_figures(document)
            context.inline_svgs = extract_inline_svgs(document)
            context.picture_elements = extract_picture_elements(document)

        return context


def build_page_context(
    url: str,
    fetch_result: FetchResult,
    cwv: CoreWebVitals | None = None,
) -> PageContext:
    return HTMLParser().parse(url=url, fetch_result=fetch_result, cwv=cwv)


__all__ = [
    "HTMLParser",
    "HTMLParserConfig",
    "build_page_context",
    "extract_figures",
    "extract_images",
    "extract_inline_svgs",
    "extract_links",
    "extract_picture_elements",
    "extract_special_links",
    "resolve_href",
    "validate_email",
    "validate_phone",
]
