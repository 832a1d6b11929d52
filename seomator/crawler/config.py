"""Typed crawler configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_COLLECT_VITALS,
    DEFAULT_CONCURRENCY,
    DEFAULT_DROP_QUERY_PREFIXES,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    DEFAULT_MAX_PAGES,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .types import JSONDict, JSONValue
from .url import UrlFilterOptions


def _as_float(value: Any, key: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"Invalid bool for '{key}': {value!r}")


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item) for item in value]
    raise ValueError(f"Invalid list for '{key}': {value!r}")


@dataclass(slots=True)
class CrawlConfig:
    """Top-level crawl configuration used by the crawler, fetcher and CLI."""

    max_pages: int = DEFAULT_MAX_PAGES
    concurrency: int = DEFAULT_CONCURRENCY
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    allow_query_params: list[str] = field(default_factory=list)
    drop_query_prefixes: list[str] = field(default_factory=lambda: list(DEFAULT_DROP_QUERY_PREFIXES))

    idle_timeout_seconds: float | None = DEFAULT_IDLE_TIMEOUT_SECONDS
    collect_vitals: bool = DEFAULT_COLLECT_VITALS

    metadata: dict[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_pages <= 0:
            raise ValueError("max_pages must be > 0")
        if self.concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.idle_timeout_seconds is not None and self.idle_timeout_seconds <= 0:
            raise ValueError("idle_timeout_seconds must be > 0 when set")
        if not self.user_agent.strip():
            raise ValueError("user_agent cannot be empty")

    def headers_for(self, url: str) -> dict[str, str]:
        """Return GET request headers: defaults plus the bot user agent."""

        merged: dict[str, str] = {"User-Agent": self.user_agent}
        merged.update(self.default_headers)
        return merged

    def url_filter_options(self) -> UrlFilterOptions:
        return UrlFilterOptions(
            include=tuple(self.include),
            exclude=tuple(self.exclude),
            allow_query_params=frozenset(self.allow_query_params),
            drop_query_prefixes=tuple(self.drop_query_prefixes),
        )

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "max_pages": self.max_pages,
            "concurrency": self.concurrency,
            "timeout_ms": self.timeout_ms,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
            "include": list(self.include),
            "exclude": list(self.exclude),
            "allow_query_params": list(self.allow_query_params),
            "drop_query_prefixes": list(self.drop_query_prefixes),
            "idle_timeout_seconds": self.idle_timeout_seconds,
            "collect_vitals": self.collect_vitals,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CrawlConfig":
        """Build config from a parsed dictionary.

        Accepts either a flat mapping or one nested under a `crawler` key, and
        reads filter settings from an optional `url_filter` section.
        """

        if isinstance(payload.get("crawler"), Mapping):
            merged = dict(payload["crawler"])
            for key, value in payload.items():
                if key != "crawler":
                    merged.setdefault(key, value)
            payload = merged

        url_filter = payload.get("url_filter") or {}
        if not isinstance(url_filter, Mapping):
            raise ValueError(f"Invalid mapping for 'url_filter': {url_filter!r}")

        def _pick(key: str) -> Any:
            return payload.get(key, url_filter.get(key))

        drop_prefixes = _pick("drop_query_prefixes")

        return cls(
            max_pages=_as_int(payload.get("max_pages", DEFAULT_MAX_PAGES), "max_pages"),
            concurrency=_as_int(payload.get("concurrency", DEFAULT_CONCURRENCY), "concurrency"),
            timeout_ms=_as_int(payload.get("timeout_ms", DEFAULT_TIMEOUT_MS), "timeout_ms"),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            include=_as_str_list(_pick("include"), "include"),
            exclude=_as_str_list(_pick("exclude"), "exclude"),
            allow_query_params=_as_str_list(_pick("allow_query_params"), "allow_query_params"),
            drop_query_prefixes=(
                list(DEFAULT_DROP_QUERY_PREFIXES)
                if drop_prefixes is None
                else _as_str_list(drop_prefixes, "drop_query_prefixes")
            ),
            idle_timeout_seconds=_as_float(
                payload.get("idle_timeout_seconds", DEFAULT_IDLE_TIMEOUT_SECONDS),
                "idle_timeout_seconds",
            ),
            collect_vitals=_as_bool(
                payload.get("collect_vitals", DEFAULT_COLLECT_VITALS),
                "collect_vitals",
            ),
            metadata=dict(payload.get("metadata", {})),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> CrawlConfig:
    """Load CrawlConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ValueError(f"Config at {config_path} must be a mapping")

    return CrawlConfig.from_dict(payload)


def save_config(config: CrawlConfig, path: str | Path) -> None:
    """Save CrawlConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValueError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "CrawlConfig",
    "load_config",
    "save_config",
]
