"""CODEOWNERS pattern matching against project paths.

Supports the ignore-file subset GitHub honours in CODEOWNERS:
- Wildcard ``*`` (anything but ``/``) and ``?`` (one character but ``/``)
- Globstar ``**`` (any depth, including none)
- Leading ``/`` anchors the pattern to the repository root
- Trailing ``/`` only matches directories (and everything beneath them)
- Trailing ``/*`` only matches the direct children of a directory

Character ranges and negation are not supported by GitHub, so ``[``/``]``
are matched literally.
"""

from __future__ import annotations

import functools
import re
from typing import Iterable

from canopus.schemas import Pattern


def _translate(body: str) -> str:
    parts: list[str] = []
    pos = 0
    while pos < len(body):
        char = body[pos]
        if char == "*":
            if body.startswith("**", pos):
                at_start = pos == 0 or body[pos - 1] == "/"
                end = pos + 2
                if at_start and end < len(body) and body[end] == "/":
                    # "**/" : zero or more leading directories
                    parts.append("(?:.*/)?")
                    pos = end + 1
                    continue
                parts.append(".*")
                pos = end
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "\\" and pos + 1 < len(body):
            pos += 1
            parts.append(re.escape(body[pos]))
        else:
            parts.append(re.escape(char))
        pos += 1
    return "".join(parts)


@functools.lru_cache(maxsize=1024)
def compile_pattern(pattern: Pattern) -> re.Pattern[str]:
    """Compile a pattern into a regex matched against root-relative POSIX paths."""
    if not pattern.body:
        return re.compile(r"^.*$")

    prefix = "^" if pattern.anchored else "^(?:.*/)?"
    if pattern.directory_only:
        # Directories match themselves only through their contents
        suffix = "/.*$"
    elif pattern.body.endswith("/*"):
        # "docs/*" owns direct children of docs, not nested directories
        suffix = "$"
    else:
        suffix = "(?:/.*)?$"
    return re.compile(prefix + _translate(pattern.body) + suffix)


def _normalize_path(path: str) -> str:
    # A backslash is a file name character on POSIX, not a separator
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def matches(pattern: Pattern, candidate_path: str) -> bool:
    """Return True when *candidate_path* is owned by *pattern*.

    Directory entries may be passed with a trailing ``/``.
    """
    return compile_pattern(pattern).match(_normalize_path(candidate_path)) is not None


def has_any_match(pattern: Pattern, paths: Iterable[str]) -> bool:
    """Return True as soon as one of *paths* matches *pattern*."""
    regex = compile_pattern(pattern)
    return any(regex.match(_normalize_path(path)) for path in paths)
