"""Glob-style path patterns used by include/exclude URL filters.

Supported wildcards:

- ``*`` matches any run of characters except ``/``
- ``**`` matches any run of characters including ``/``
- ``?`` matches exactly one character

Everything else is literal. Patterns are anchored at both ends, and a pattern
ending in ``/**`` also matches its base path (``/admin/**`` matches ``/admin``).
Compilation never fails: any string is a pattern.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field


_GLOBSTAR = ".*"
_STAR = "[^/]*"
_ANY_CHAR = "."
_TRAILING_GLOBSTAR = "/**"


def _translate(pattern: str) -> str:
    parts: list[str] = []
    index = 0
    length = len(pattern)

    while index < length:
        char = pattern[index]
        if char == "*":
            # `**` has to be consumed as one token before single `*` is considered.
            if index + 1 < length and pattern[index + 1] == "*":
                parts.append(_GLOBSTAR)
                index += 2
                continue
            parts.append(_STAR)
        elif char == "?":
            parts.append(_ANY_CHAR)
        else:
            parts.append(re.escape(char))
        index += 1

    return "".join(parts)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regular expression."""

    if pattern.endswith(_TRAILING_GLOBSTAR):
        body = _translate(pattern[: -len(_TRAILING_GLOBSTAR)]) + "(?:/.*)?"
    else:
        body = _translate(pattern)
    return re.compile(rf"\A{body}\Z")


@dataclass(frozen=True, slots=True)
class GlobPattern:
    """Compiled, reusable path matcher."""

    pattern: str
    regex: re.Pattern[str] = field(repr=False, compare=False)

    def test(self, path: str) -> bool:
        return self.regex.match(path) is not None

    __call__ = test


def compile_glob(pattern: str) -> GlobPattern:
    return GlobPattern(pattern=pattern, regex=glob_to_regex(pattern))


__all__ = ["GlobPattern", "compile_glob", "glob_to_regex"]
