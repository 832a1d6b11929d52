"""URL normalization and include/exclude filtering for the crawl frontier."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from .constants import DEFAULT_DROP_QUERY_PREFIXES, NON_HTML_EXTENSIONS
from .glob import GlobPattern, compile_glob


def host_from_url(url: str) -> str:
    """Return the lowercased hostname of URL, or "" when it has none.

    Unlike domain matching elsewhere, `www.` is kept: the crawler treats
    `example.com` and `www.example.com` as different hosts.
    """

    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_absolute_url(url: str) -> bool:
    try:
        parsed = urlsplit(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def resolve_path(url_or_path: str) -> str:
    """Return the path component of an absolute URL, or treat input as a path."""

    if is_absolute_url(url_or_path):
        return urlsplit(url_or_path).path or "/"
    return url_or_path if url_or_path.startswith("/") else f"/{url_or_path}"


def is_non_html_resource(url: str) -> bool:
    """Return True when URL's path ends in a known document/asset extension."""

    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    return path.endswith(NON_HTML_EXTENSIONS)


def _has_default_port(scheme: str, port: int | None) -> bool:
    if port is None:
        return False
    return (scheme == "http" and port == 80) or (scheme == "https" and port == 443)


def _normalize_netloc(parsed_url) -> str:  # urllib.parse.SplitResult
    host = (parsed_url.hostname or "").lower()
    if not host:
        return parsed_url.netloc.lower()
    if ":" in host:
        host = f"[{host}]"

    userinfo = ""
    if parsed_url.username:
        userinfo = quote(parsed_url.username, safe="%")
        if parsed_url.password:
            userinfo += ":" + quote(parsed_url.password, safe="%")
        userinfo += "@"

    port: int | None
    try:
        port = parsed_url.port
    except ValueError:
        port = None

    if port is not None and not _has_default_port(parsed_url.scheme.lower(), port):
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


@dataclass(frozen=True, slots=True)
class UrlFilterOptions:
    """Include/exclude globs plus query-parameter policy for one crawl."""

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    allow_query_params: frozenset[str] = field(default_factory=frozenset)
    drop_query_prefixes: tuple[str, ...] = DEFAULT_DROP_QUERY_PREFIXES

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "UrlFilterOptions":
        payload = payload or {}
        drop = payload.get("drop_query_prefixes")
        return cls(
            include=tuple(str(item) for item in payload.get("include") or ()),
            exclude=tuple(str(item) for item in payload.get("exclude") or ()),
            allow_query_params=frozenset(
                str(item) for item in payload.get("allow_query_params") or ()
            ),
            drop_query_prefixes=(
                DEFAULT_DROP_QUERY_PREFIXES
                if drop is None
                else tuple(str(item) for item in drop)
            ),
        )

    def to_json(self) -> dict[str, list[str]]:
        return {
            "include": list(self.include),
            "exclude": list(self.exclude),
            "allow_query_params": sorted(self.allow_query_params),
            "drop_query_prefixes": list(self.drop_query_prefixes),
        }


class UrlFilter:
    """Decide which URLs join the frontier and canonicalize them for dedup.

    All globs are compiled once here; instances are immutable afterwards and
    may be shared by every crawl worker without locking.
    """

    def __init__(self, options: UrlFilterOptions | None = None) -> None:
        self.options = options or UrlFilterOptions()

        self._include: tuple[GlobPattern, ...] = tuple(
            compile_glob(pattern) for pattern in self.options.include
        )
        self._exclude: tuple[GlobPattern, ...] = tuple(
            compile_glob(pattern) for pattern in self.options.exclude
        )
        self._allow_query_params = frozenset(self.options.allow_query_params)
        self._drop_prefixes = tuple(
            prefix.lower() for prefix in self.options.drop_query_prefixes
        )

    def should_crawl(self, url_or_path: str) -> bool:
        """Apply include then exclude patterns to the URL's path."""

        path = resolve_path(url_or_path)

        if self._include and not any(pattern.test(path) for pattern in self._include):
            return False

        if self._exclude and any(pattern.test(path) for pattern in self._exclude):
            return False

        return True

    def normalize_url(self, url: str) -> str:
        """Canonicalize an absolute URL; anything unparseable comes back unchanged."""

        try:
            parsed = urlsplit(url)
        except ValueError:
            return url
        if not parsed.scheme or not parsed.netloc:
            return url

        scheme = parsed.scheme.lower()
        netloc = _normalize_netloc(parsed)
        query = self._normalize_query(parsed.query)

        path = parsed.path or "/"
        if path != "/":
            path = path.rstrip("/") or "/"

        return urlunsplit((scheme, netloc, path, query, ""))

    def matches_pattern(self, url_or_path: str, pattern: str) -> bool:
        """One-off check of a URL against a single glob (not used by the crawl loop)."""

        return compile_glob(pattern).test(resolve_path(url_or_path))

    def _keep_param(self, key: str) -> bool:
        if self._allow_query_params:
            return key in self._allow_query_params
        lowered = key.lower()
        return not any(lowered.startswith(prefix) for prefix in self._drop_prefixes)

    def _normalize_query(self, query: str) -> str:
        if not query:
            return ""

        pairs = [
            (key, value)
            for key, value in parse_qsl(query, keep_blank_values=True)
            if self._keep_param(key)
        ]
        # Stable sort by name only: repeated keys keep their relative order.
        pairs.sort(key=lambda item: item[0])
        return urlencode(pairs)


def create_url_filter(
    *,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    allow_query_params: Iterable[str] = (),
    drop_query_prefixes: Iterable[str] | None = None,
) -> UrlFilter:
    return UrlFilter(
        UrlFilterOptions(
            include=tuple(include),
            exclude=tuple(exclude),
            allow_query_params=frozenset(allow_query_params),
            drop_query_prefixes=(
                DEFAULT_DROP_QUERY_PREFIXES
                if drop_query_prefixes is None
                else tuple(drop_query_prefixes)
            ),
        )
    )


__all__ = [
    "UrlFilter",
    "UrlFilterOptions",
    "create_url_filter",
    "host_from_url",
    "is_absolute_url",
    "is_non_html_resource",
    "resolve_path",
]
