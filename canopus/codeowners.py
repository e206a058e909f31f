"""Tolerant, line-oriented CODEOWNERS parser.

Every physical line becomes exactly one :class:`Line`.  Lines that cannot be
understood are kept verbatim as ``MALFORMED`` so the document always renders
back to the original text; reporting them is the validator's job.
"""

from __future__ import annotations

import logging
import re

from canopus.schemas import (
    Document,
    EmailOwner,
    GroupOwner,
    Line,
    LineKind,
    Owner,
    Pattern,
    TeamOwner,
    UserOwner,
)

logger = logging.getLogger(__name__)

# From https://github.com/dead-claudia/github-limits
GITHUB_HANDLE_RE = re.compile(r"^[a-zA-Z\d](?:-?[a-zA-Z\d]){0,38}$")
GITHUB_TEAM_RE = re.compile(r"^[a-zA-Z\d](?:[-_]?[a-zA-Z\d]){0,254}$")
EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
GROUP_RE = re.compile(r"^\[([^\]]+)\]$")

_UNQUOTED_PATH_RE = re.compile(r'[^\s#"]+')
_TOKEN_RE = re.compile(r"\S+")


class _LineSyntaxError(ValueError):
    """Raised internally when a rule line cannot be classified."""

    def __init__(self, reason: str, pattern: Pattern | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.pattern = pattern


# ---------------------------------------------------------------------------
# Owners
# ---------------------------------------------------------------------------

def parse_owner(token: str) -> Owner | None:
    """Classify a single owner token, or return None when it is not an owner.

    Precedence is fixed: ``@org/team``, then ``@user``, then an email
    address, then a bracketed ``[group]``.
    """
    if token.startswith("@"):
        name = token[1:]
        if "/" in name:
            organization, _, team = name.partition("/")
            if GITHUB_HANDLE_RE.match(organization) and GITHUB_TEAM_RE.match(team):
                return TeamOwner(organization=organization, team_slug=team)
            return None
        if GITHUB_HANDLE_RE.match(name):
            return UserOwner(handle=name)
        return None

    if EMAIL_RE.match(token):
        return EmailOwner(address=token)

    group = GROUP_RE.match(token)
    if group:
        return GroupOwner(name=group.group(1))

    return None


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

def parse_pattern(raw: str, body: str | None = None) -> Pattern:
    """Build a :class:`Pattern` from a path token.

    *body* is the glob without its surrounding quotes when the token was
    quoted (glob escapes such as ``\\*`` are kept); it defaults to *raw*.
    """
    glob = raw if body is None else body
    anchored = glob.startswith("/")
    if anchored:
        glob = glob[1:]
    directory_only = len(glob) > 0 and glob.endswith("/")
    if directory_only:
        glob = glob[:-1]
    return Pattern(raw=raw, body=glob, anchored=anchored, directory_only=directory_only)


def _read_path(text: str) -> tuple[Pattern, int]:
    """Read the path token at the start of *text*; return it and where it ends."""
    if text.startswith('"'):
        chars: list[str] = []
        pos = 1
        while pos < len(text):
            char = text[pos]
            if char == "\\" and pos + 1 < len(text):
                # Only the quote is unescaped here, other escapes belong to the glob
                chars.append(text[pos + 1] if text[pos + 1] == '"' else text[pos : pos + 2])
                pos += 2
                continue
            if char == '"':
                pos += 1
                break
            chars.append(char)
            pos += 1
        else:
            raise _LineSyntaxError("unterminated quoted path")
        raw, body = text[:pos], "".join(chars)
    else:
        match = _UNQUOTED_PATH_RE.match(text)
        if not match:
            raise _LineSyntaxError("invalid path pattern")
        pos = match.end()
        raw = body = match.group(0)

    if pos < len(text) and not text[pos].isspace():
        raise _LineSyntaxError("invalid path pattern")
    if not body.strip("/") and body != "/":
        raise _LineSyntaxError("empty path pattern")
    if body.startswith("!"):
        raise _LineSyntaxError("negated patterns are not supported")

    return parse_pattern(raw, body), pos


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------

def _classify(index: int, raw: str, ending: str) -> Line:
    stripped = raw.strip()
    if not stripped:
        return Line(index=index, raw=raw, ending=ending, kind=LineKind.BLANK)

    if stripped.startswith("#"):
        return Line(
            index=index,
            raw=raw,
            ending=ending,
            kind=LineKind.COMMENT,
            comment=stripped[1:],
        )

    text = raw.lstrip()
    pattern: Pattern | None = None
    try:
        pattern, end = _read_path(text)
        owners: list[Owner] = []
        inline_comment: str | None = None
        rest = text[end:]
        for token in _TOKEN_RE.finditer(rest):
            if token.group(0).startswith("#"):
                inline_comment = rest[token.start() + 1:].strip()
                break
            owner = parse_owner(token.group(0))
            if owner is None:
                raise _LineSyntaxError(f"cannot parse owner '{token.group(0)}'", pattern)
            owners.append(owner)
    except _LineSyntaxError as e:
        logger.debug("L%d is malformed: %s", index, e.reason)
        return Line(
            index=index,
            raw=raw,
            ending=ending,
            kind=LineKind.MALFORMED,
            pattern=e.pattern or pattern,
            error=e.reason,
        )

    return Line(
        index=index,
        raw=raw,
        ending=ending,
        kind=LineKind.RULE,
        pattern=pattern,
        owners=tuple(owners),
        inline_comment=inline_comment,
    )


def _split_lines(content: str) -> list[tuple[str, str]]:
    """Split into (raw, ending) pairs, keeping "\\n" / "\\r\\n" terminators."""
    if not content:
        return []
    chunks = content.split("\n")
    pairs: list[tuple[str, str]] = []
    for position, chunk in enumerate(chunks):
        last = position == len(chunks) - 1
        if last and not chunk:
            break
        ending = "" if last else "\n"
        if ending and chunk.endswith("\r"):
            chunk, ending = chunk[:-1], "\r\n"
        pairs.append((chunk, ending))
    return pairs


def parse_codeowners(content: str) -> Document:
    """Parse CODEOWNERS text into a :class:`Document`; never raises on bad lines."""
    lines = [
        _classify(index, raw, ending)
        for index, (raw, ending) in enumerate(_split_lines(content), start=1)
    ]
    malformed = sum(1 for line in lines if line.kind == LineKind.MALFORMED)
    logger.debug("Parsed %d lines (%d malformed)", len(lines), malformed)
    return Document(lines=tuple(lines))
