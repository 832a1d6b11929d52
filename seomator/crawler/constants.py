"""Default values shared by crawler config, fetcher, and CLI."""

from __future__ import annotations

DEFAULT_MAX_PAGES = 10
DEFAULT_CONCURRENCY = 3
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_HEAD_TIMEOUT_MS = 10_000
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_IDLE_TIMEOUT_SECONDS: float | None = 60.0
DEFAULT_COLLECT_VITALS = False

DEFAULT_USER_AGENT = "SEOmatorBot/1.0 (+https://github.com/seo-skills/seo-audit-skill)"
DEFAULT_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

DEFAULT_DROP_QUERY_PREFIXES = ("utm_", "gclid", "fbclid", "mc_", "_ga")

NON_HTML_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".tar", ".gz",
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".mp3", ".mp4", ".avi", ".mov", ".wmv",
    ".css", ".js", ".json", ".xml",
)

MAX_LINK_TEXT_CHARS = 200
MAX_CAPTION_CHARS = 200
SVG_SNIPPET_CHARS = 100

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
