"""Tests for repair planning and rewriting."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from canopus.codeowners import parse_codeowners
from canopus.config import Config
from canopus.repairing import (
    PRESERVED_ANNOTATION,
    apply_repair,
    plan_repair,
    preview_repair,
    write_atomically,
)
from canopus.schemas import ActionType, IssueKind, RepairPolicy, ValidationIssue
from canopus.validator import validate


RUST_PATHS = ["Cargo.toml", "src/main.rs", "src/lib.rs"]
BROKEN = "*.rs @dotanuki/crabbers\n*.js    dotanuki/frontend\n"


@pytest.fixture
def offline_config() -> Config:
    return Config(organization="dotanuki-labs", offline_only=True)


def _repair(content: str, config: Config, policy: RepairPolicy = RepairPolicy.COMMENT_OUT) -> str:
    document = parse_codeowners(content)
    issues = validate(document, config, paths=RUST_PATHS)
    return apply_repair(document, plan_repair(document, issues, policy))


class TestPlanRepair:
    def test_one_action_per_line(self, offline_config: Config) -> None:
        document = parse_codeowners(BROKEN)
        issues = validate(document, offline_config, paths=RUST_PATHS)
        plan = plan_repair(document, issues)
        assert [action.line_index for action in plan.actions] == [1, 2]
        assert [action.action for action in plan.actions] == [ActionType.KEEP, ActionType.COMMENT_OUT]

    def test_reasons_collect_every_issue_of_the_line(self, offline_config: Config) -> None:
        document = parse_codeowners(BROKEN)
        issues = validate(document, offline_config, paths=RUST_PATHS)
        (change,) = plan_repair(document, issues).changes()
        assert change.line_index == 2
        assert len(change.reasons) == 2
        assert change.annotation == PRESERVED_ANNOTATION

    def test_online_issues_are_not_repaired(self) -> None:
        document = parse_codeowners("*.rs @ghost\n")
        issues = [ValidationIssue.of(IssueKind.USER_DOES_NOT_EXIST, 1, "'ghost' user does not exist")]
        plan = plan_repair(document, issues)
        assert plan.is_noop
        assert apply_repair(document, plan) == "*.rs @ghost\n"

    def test_no_issues_is_noop(self) -> None:
        document = parse_codeowners("*.rs @a\n")
        assert plan_repair(document, []).is_noop

    def test_delete_policy(self, offline_config: Config) -> None:
        document = parse_codeowners(BROKEN)
        issues = validate(document, offline_config, paths=RUST_PATHS)
        plan = plan_repair(document, issues, RepairPolicy.DELETE)
        assert plan.policy == RepairPolicy.DELETE
        assert [action.action for action in plan.changes()] == [ActionType.DELETE]
        assert plan.changes()[0].annotation == ""


class TestApplyRepair:
    def test_comment_out_preserves_original_text(self, offline_config: Config) -> None:
        assert _repair(BROKEN, offline_config) == (
            "*.rs @dotanuki/crabbers\n"
            "# *.js    dotanuki/frontend (preserved by canopus)\n"
        )

    def test_remove_lines(self, offline_config: Config) -> None:
        assert _repair(BROKEN, offline_config, RepairPolicy.DELETE) == "*.rs @dotanuki/crabbers\n"

    def test_untouched_lines_are_byte_identical(self, offline_config: Config) -> None:
        content = "# owners\r\n\r\n*.rs   @a   # rustaceans\r\n*.go @b\r\n"
        repaired = _repair(content, offline_config)
        assert repaired == (
            "# owners\r\n\r\n*.rs   @a   # rustaceans\r\n"
            "# *.go @b (preserved by canopus)\r\n"
        )

    def test_last_line_without_terminator(self, offline_config: Config) -> None:
        assert _repair("*.rs @a\n*.go @b", offline_config) == "*.rs @a\n# *.go @b (preserved by canopus)"

    def test_repair_is_idempotent(self, offline_config: Config) -> None:
        once = _repair(BROKEN, offline_config)
        document = parse_codeowners(once)
        issues = validate(document, offline_config, paths=RUST_PATHS)
        assert issues == []
        assert plan_repair(document, issues).is_noop
        assert _repair(once, offline_config) == once

    def test_duplicates_keep_last_definition(self, offline_config: Config) -> None:
        content = "*.rs @a\n*.rs @b\n"
        assert _repair(content, offline_config, RepairPolicy.DELETE) == "*.rs @b\n"

    def test_clean_file_round_trips(self, offline_config: Config) -> None:
        content = "# Rust\n\n*.rs @a # inline\n/src/ @b\n"
        assert _repair(content, offline_config) == content


class TestPreviewRepair:
    def test_unified_diff(self, offline_config: Config) -> None:
        document = parse_codeowners(BROKEN)
        plan = plan_repair(document, validate(document, offline_config, paths=RUST_PATHS))
        diff = preview_repair(document, plan)
        assert "--- a/CODEOWNERS" in diff
        assert "+++ b/CODEOWNERS" in diff
        assert "-*.js    dotanuki/frontend\n" in diff
        assert "+# *.js    dotanuki/frontend (preserved by canopus)\n" in diff

    def test_noop_has_empty_diff(self) -> None:
        document = parse_codeowners("*.rs @a\n")
        assert preview_repair(document, plan_repair(document, [])) == ""


class TestWriteAtomically:
    def test_replaces_content(self, tmp_path: Path) -> None:
        target = tmp_path / "CODEOWNERS"
        target.write_text("old\n")
        write_atomically(target, "new\r\n")
        assert target.read_bytes() == b"new\r\n"
        assert os.listdir(tmp_path) == ["CODEOWNERS"]

    def test_keeps_file_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "CODEOWNERS"
        target.write_text("old\n")
        target.chmod(0o640)
        write_atomically(target, "new\n")
        assert target.stat().st_mode & 0o777 == 0o640

    def test_failure_leaves_original_intact(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        target = tmp_path / "CODEOWNERS"
        target.write_text("original\n")

        def broken_replace(src: str, dst: str) -> None:
            raise OSError("disk full")

        monkeypatch.setattr("canopus.repairing.os.replace", broken_replace)
        with pytest.raises(OSError, match="disk full"):
            write_atomically(target, "half written\n")

        assert target.read_text() == "original\n"
        assert os.listdir(tmp_path) == ["CODEOWNERS"]
