"""Turn offline issues into line edits and rewrite CODEOWNERS safely."""

from __future__ import annotations

import difflib
import logging
import os
import shutil
import tempfile
from collections import defaultdict
from pathlib import Path
from typing import Iterable

from canopus.schemas import (
    ActionType,
    Document,
    RepairAction,
    RepairPlan,
    RepairPolicy,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

PRESERVED_ANNOTATION = "(preserved by canopus)"


def plan_repair(
    document: Document,
    issues: Iterable[ValidationIssue],
    policy: RepairPolicy = RepairPolicy.COMMENT_OUT,
) -> RepairPlan:
    """Build one action per line; only offline issues are eligible for repair."""
    reasons: dict[int, list[str]] = defaultdict(list)
    for issue in issues:
        if not issue.offline:
            continue
        reasons[issue.line_index].append(issue.message)

    action = ActionType.DELETE if policy == RepairPolicy.DELETE else ActionType.COMMENT_OUT
    actions: list[RepairAction] = []
    for line in document.lines:
        if line.index not in reasons:
            actions.append(RepairAction(line_index=line.index))
            continue
        actions.append(
            RepairAction(
                line_index=line.index,
                action=action,
                annotation=PRESERVED_ANNOTATION if action == ActionType.COMMENT_OUT else "",
                reasons=tuple(reasons[line.index]),
            )
        )

    plan = RepairPlan(policy=policy, actions=tuple(actions))
    logger.debug("Planned %d line repair(s)", len(plan.changes()))
    return plan


def apply_repair(document: Document, plan: RepairPlan) -> str:
    """Render *document* with *plan* applied; untouched lines are copied verbatim."""
    actions = {action.line_index: action for action in plan.actions}
    chunks: list[str] = []
    for line in document.lines:
        action = actions.get(line.index)
        if action is None or action.action == ActionType.KEEP:
            chunks.append(line.text)
        elif action.action == ActionType.COMMENT_OUT:
            chunks.append(f"# {line.raw} {action.annotation}{line.ending}")
        # DELETE drops the line, terminator included
    return "".join(chunks)


def preview_repair(document: Document, plan: RepairPlan, name: str = "CODEOWNERS") -> str:
    """Unified diff between the current and the repaired file."""
    before = document.render().splitlines(keepends=True)
    after = apply_repair(document, plan).splitlines(keepends=True)
    return "".join(difflib.unified_diff(before, after, fromfile=f"a/{name}", tofile=f"b/{name}"))


def write_atomically(path: str | Path, content: str) -> None:
    """Replace *path* with *content* in one step; the original survives any failure."""
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if target.exists():
            shutil.copymode(target, tmp_name)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.info("Rewrote %s", target)
