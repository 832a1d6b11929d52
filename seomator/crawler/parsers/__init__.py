"""HTML extraction exports."""

from .html_parser import (
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
