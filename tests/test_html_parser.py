"""Tests for HTML signal extraction.

Documents are parsed with ``parse_document`` (BeautifulSoup + lxml) exactly as
the fetcher does; no network access is involved.
"""

from __future__ import annotations

import pytest

from seomator.crawler.fetcher import parse_document
from seomator.crawler.parsers import (
    HTMLParser,
    HTMLParserConfig,
    build_page_context,
    extract_figures,
    extract_images,
    extract_inline_svgs,
    extract_links,
    extract_picture_elements,
    extract_special_links,
    resolve_href,
    validate_email,
    validate_phone,
)
from seomator.crawler.types import (
    CoreWebVitals,
    FetchResult,
    InvalidLinkReason,
    SpecialLinkType,
)


BASE_URL = "https://example.com/blog/post"


# ---------------------------------------------------------------------------
# Fixtures / constants
# ---------------------------------------------------------------------------

_PAGE_HTML = """\
<!DOCTYPE html>
<html>
<head><title>Post</title></head>
<body>
  <a href="/about">About us</a>
  <a href="related">Related</a>
  <a href="https://example.com/contact" rel="NoFollow noopener">Contact</a>
  <a href="https://blog.example.com/x">Subdomain</a>
  <a href="https://other.org/">Elsewhere</a>
  <a href="#">Top</a>
  <a href="">Nothing</a>
  <a href="javascript:void(0)">Click</a>
  <a href="https:// bad url">Broken</a>
  <a href="mailto:team@example.com?subject=hi">Mail</a>
  <a href="tel:+1 (555) 123-4567">Call</a>
  <a href="data:text/plain,hello">Data</a>
  <a href="/icon" title="Icon link"><img src="/i.png" alt=""></a>
  <a name="anchor-without-href">Ignored</a>
</body>
</html>
"""


def _fetch_result(html: str, url: str = BASE_URL) -> FetchResult:
    return FetchResult(
        url=url,
        html=html,
        document=parse_document(html),
        headers={"content-type": "text/html"},
        status_code=200,
        elapsed_ms=12,
    )


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

class TestExtractLinks:
    @pytest.fixture
    def extracted(self):
        return extract_links(parse_document(_PAGE_HTML), BASE_URL)

    def test_valid_links_are_absolute(self, extracted) -> None:
        links, _ = extracted
        hrefs = [link.href for link in links]
        assert hrefs == [
            "https://example.com/about",
            "https://example.com/blog/related",
            "https://example.com/contact",
            "https://blog.example.com/x",
            "https://other.org/",
            "https://example.com/icon",
        ]

    def test_internal_is_exact_host_match(self, extracted) -> None:
        links, _ = extracted
        internal = {link.href: link.is_internal for link in links}
        assert internal["https://example.com/about"] is True
        assert internal["https://blog.example.com/x"] is False
        assert internal["https://other.org/"] is False

    def test_nofollow_is_case_insensitive(self, extracted) -> None:
        links, _ = extracted
        nofollow = [link.href for link in links if link.is_nofollow]
        assert nofollow == ["https://example.com/contact"]

    def test_text_falls_back_to_title(self, extracted) -> None:
        links, _ = extracted
        by_href = {link.href: link.text for link in links}
        assert by_href["https://example.com/about"] == "About us"
        assert by_href["https://example.com/icon"] == "Icon link"

    def test_invalid_links(self, extracted) -> None:
        _, invalid = extracted
        assert [(link.href, link.reason) for link in invalid] == [
            ("#", InvalidLinkReason.EMPTY),
            ("", InvalidLinkReason.EMPTY),
            ("javascript:void(0)", InvalidLinkReason.JAVASCRIPT),
            ("https:// bad url", InvalidLinkReason.MALFORMED),
        ]
        assert invalid[0].text == "Top"

    def test_special_schemes_are_not_links_or_invalid(self, extracted) -> None:
        links, invalid = extracted
        seen = [link.href for link in links] + [link.href for link in invalid]
        assert not any(href.startswith(("mailto:", "tel:", "data:")) for href in seen)

    def test_long_text_is_truncated(self) -> None:
        html = f'<a href="/x">{"a" * 500}</a>'
        links, _ = extract_links(parse_document(html), BASE_URL)
        assert len(links[0].text) == 200


class TestResolveHref:
    def test_relative(self) -> None:
        assert resolve_href(BASE_URL, "../x") == "https://example.com/x"

    @pytest.mark.parametrize("href", ["https:// bad url", "http://", "http://host:port/"])
    def test_unusable(self, href: str) -> None:
        assert resolve_href(BASE_URL, href) is None


# ---------------------------------------------------------------------------
# Special links
# ---------------------------------------------------------------------------

class TestSpecialLinks:
    def test_extracts_tel_and_mailto(self) -> None:
        special = extract_special_links(parse_document(_PAGE_HTML))
        assert [link.type for link in special] == [SpecialLinkType.MAILTO, SpecialLinkType.TEL]

        mail, tel = special
        assert mail.value == "team@example.com"
        assert mail.is_valid is True
        assert mail.issue is None
        assert tel.value == "+1 (555) 123-4567"
        assert tel.is_valid is True

    def test_invalid_values_carry_issue(self) -> None:
        html = '<a href="mailto:nobody">x</a><a href="tel:12">y</a><a href="mailto:">z</a>'
        special = extract_special_links(parse_document(html))
        assert [(link.is_valid, link.issue) for link in special] == [
            (False, "Invalid email format"),
            (False, "Invalid phone format (should be 7-15 digits)"),
            (False, "Empty email address"),
        ]

    @pytest.mark.parametrize(
        ("phone", "valid"),
        [("5551234", True), ("+44 20 7946 0958", True), ("123456", False), ("1" * 16, False), ("", False)],
    )
    def test_validate_phone(self, phone: str, valid: bool) -> None:
        assert validate_phone(phone)[0] is valid

    @pytest.mark.parametrize(
        ("email", "valid"),
        [("a@b.co", True), ("a@b", False), ("a b@c.d", False), ("", False)],
    )
    def test_validate_email(self, email: str, valid: bool) -> None:
        assert validate_email(email)[0] is valid


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

class TestExtractImages:
    def test_sources_and_lazy_flags(self) -> None:
        html = """
        <img src="/a.png" alt="A" width="10" height="20">
        <img data-src="b.png">
        <img src="/c.png" loading="lazy" alt="">
        <img src="data:image/png;base64,AAAA">
        <img src="">
        <img>
        """
        images = extract_images(parse_document(html), BASE_URL)

        assert [image.src for image in images] == [
            "https://example.com/a.png",
            "https://example.com/blog/b.png",
            "https://example.com/c.png",
        ]
        first, second, third = images
        assert (first.alt, first.has_alt, first.width, first.height) == ("A", True, "10", "20")
        assert first.is_lazy_loaded is False
        assert second.has_alt is False
        assert second.is_lazy_loaded is True
        assert third.has_alt is True
        assert third.alt == ""
        assert third.is_lazy_loaded is True


class TestExtractFigures:
    def test_caption_and_image_count(self) -> None:
        html = """
        <figure><img src="/a.png"><img src="/b.png"><figcaption> Two images </figcaption></figure>
        <figure><img src="/c.png"></figure>
        """
        figures = extract_figures(parse_document(html))

        assert figures[0].has_figcaption is True
        assert figures[0].image_count == 2
        assert figures[0].caption_text == "Two images"
        assert figures[1].has_figcaption is False
        assert figures[1].caption_text is None

    def test_caption_truncated(self) -> None:
        html = f"<figure><figcaption>{'c' * 300}</figcaption></figure>"
        assert len(extract_figures(parse_document(html))[0].caption_text) == 200

    def test_multiple_captions_concatenate_without_separator(self) -> None:
        html = "<figure><img src='/a.png'><figcaption>Photo</figcaption><figcaption>Credit</figcaption></figure>"
        figure = extract_figures(parse_document(html))[0]

        assert figure.has_figcaption is True
        assert figure.caption_text == "PhotoCredit"


class TestExtractInlineSvgs:
    def test_flags_and_snippet(self) -> None:
        html = (
            '<svg viewBox="0 0 10 10"><title>Logo</title>'
            + '<path d="' + "M0 0 " * 40 + '"></path></svg>'
            + "<svg><rect></rect></svg>"
        )
        svgs = extract_inline_svgs(parse_document(html))

        assert svgs[0].has_viewbox is True
        assert svgs[0].has_title is True
        assert len(svgs[0].snippet) == 100
        assert svgs[0].size_bytes > 100
        assert svgs[1].has_viewbox is False
        assert svgs[1].has_title is False


class TestExtractPictureElements:
    def test_sources_and_fallback(self) -> None:
        html = """
        <picture>
          <source srcset="/a.avif" type="image/avif">
          <source srcset="/a.webp" type="image/webp">
          <source srcset="/a.jpg">
          <img src="/a.jpg">
        </picture>
        <picture><source srcset="/b.webp"></picture>
        """
        pictures = extract_picture_elements(parse_document(html))

        assert pictures[0].has_img_fallback is True
        assert pictures[0].source_count == 3
        assert pictures[0].img_src == "/a.jpg"
        assert pictures[0].source_types == ["image/avif", "image/webp"]
        assert pictures[1].has_img_fallback is False
        assert pictures[1].img_src is None


# ---------------------------------------------------------------------------
# HTMLParser / build_page_context
# ---------------------------------------------------------------------------

class TestHTMLParser:
    def test_builds_full_context(self) -> None:
        cwv = CoreWebVitals(lcp=1200.0)
        context = build_page_context(BASE_URL, _fetch_result(_PAGE_HTML), cwv)

        assert context.url == BASE_URL
        assert context.status_code == 200
        assert context.elapsed_ms == 12
        assert context.headers == {"content-type": "text/html"}
        assert context.cwv is cwv
        assert len(context.links) == 6
        assert len(context.invalid_links) == 4
        assert len(context.special_links) == 2
        assert len(context.images) == 1
        assert context.redirect_chain is None

    def test_media_extraction_can_be_disabled(self) -> None:
        parser = HTMLParser(HTMLParserConfig(extract_media=False))
        context = parser.parse(url=BASE_URL, fetch_result=_fetch_result(_PAGE_HTML))

        assert context.images == []
        assert len(context.links) == 6
        assert context.cwv == CoreWebVitals()

    def test_non_html_body_does_not_raise(self) -> None:
        context = build_page_context(BASE_URL, _fetch_result('{"json": true}'))
        assert context.links == []
        assert context.images == []

    def test_to_json_is_serializable_shape(self) -> None:
        payload = build_page_context(BASE_URL, _fetch_result(_PAGE_HTML)).to_json()
        assert payload["links"][0] == {
            "href": "https://example.com/about",
            "text": "About us",
            "is_internal": True,
            "is_nofollow": False,
        }
        assert payload["cwv"] == {}
        assert "document" not in payload
