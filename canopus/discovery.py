"""Locate the CODEOWNERS file of a project."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

CONVENTIONAL_LOCATIONS = [
    Path(".github") / "CODEOWNERS",
    Path("docs") / "CODEOWNERS",
    Path("CODEOWNERS"),
]


class CodeOwnersLocationError(Exception):
    pass


class CodeOwnersNotFoundError(CodeOwnersLocationError):
    pass


class MultipleCodeOwnersError(CodeOwnersLocationError):
    pass


class CodeOwnersDecodeError(CodeOwnersLocationError):
    pass


@dataclass(frozen=True)
class CodeOwnersContext:
    project_root: Path
    location: Path
    contents: str


def locate_codeowners(project_root: str | Path) -> Path:
    """Return the single CODEOWNERS file found at a conventional location."""
    root = Path(project_root)
    logger.info("Project location : %s", root)

    found = [root / candidate for candidate in CONVENTIONAL_LOCATIONS if (root / candidate).is_file()]

    if not found:
        raise CodeOwnersNotFoundError(f"no CODEOWNERS definition found in {root}")
    if len(found) > 1:
        listed = ", ".join(str(path.relative_to(root)) for path in found)
        raise MultipleCodeOwnersError(f"found multiple CODEOWNERS definitions : {listed}")

    return found[0]


def load_codeowners(project_root: str | Path) -> CodeOwnersContext:
    root = Path(project_root)
    location = locate_codeowners(root)
    # newline="" keeps "\r\n" terminators intact
    try:
        with open(location, encoding="utf-8", newline="") as f:
            contents = f.read()
    except UnicodeDecodeError as e:
        raise CodeOwnersDecodeError(
            f"CODEOWNERS is not valid UTF-8 : {e.reason} at byte {e.start} of {location}"
        ) from e
    logger.info("Codeowners config found at : %s", location)
    return CodeOwnersContext(project_root=root, location=location, contents=contents)
