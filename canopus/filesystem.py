"""Enumerate project paths for pattern matching."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

SKIP_DIRS = {".git"}


def _list_with_git(root: Path) -> list[str] | None:
    """List tracked and untracked-but-not-ignored files, or None outside git."""
    try:
        result = subprocess.run(
            ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],
            cwd=root,
            check=True,
            capture_output=True,
            encoding="utf-8",
            # Non UTF-8 file names survive as lone surrogates
            errors="surrogateescape",
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("git ls-files unavailable for %s: %s", root, e)
        return None

    return sorted({path for path in result.stdout.split("\0") if path})


def _list_with_walk(root: Path) -> list[str]:
    paths: list[str] = []
    for current, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
        base = Path(current).relative_to(root)
        for name in sorted(files):
            paths.append((base / name).as_posix())
    return paths


def list_project_paths(project_root: str | Path) -> list[str]:
    """Return root-relative POSIX paths of the project files.

    Honours .gitignore when the root is inside a git work tree.
    """
    root = Path(project_root)
    paths = _list_with_git(root)
    if paths is None:
        paths = _list_with_walk(root)
    logger.debug("Enumerated %d project paths under %s", len(paths), root)
    return paths
