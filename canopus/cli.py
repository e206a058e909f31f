"""CLI entrypoint for Canopus."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from canopus.codeowners import parse_codeowners
from canopus.config import Config, ConfigError, load_config
from canopus.discovery import CodeOwnersContext, CodeOwnersLocationError, load_codeowners
from canopus.filesystem import list_project_paths
from canopus.schemas import Document, RepairPolicy, Severity, ValidationIssue

app = typer.Typer(
    name="canopus",
    help="Validate and repair GitHub CODEOWNERS files.",
    add_completion=False,
)
console = Console()

EXIT_ISSUES = 1
EXIT_FATAL = 2


def _setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
    )


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error: {escape(message)}[/red]")
    return typer.Exit(EXIT_FATAL)


def _evaluate(
    path: Path, config_file: Optional[str], offline: bool
) -> tuple[CodeOwnersContext, Config, Document, list[ValidationIssue]]:
    """Locate, parse and validate the CODEOWNERS file of the project at *path*."""
    from canopus.github_client import GitHubClient, GitHubClientError
    from canopus.validator import validate

    try:
        context = load_codeowners(path)
        cfg = load_config(path, config_path=config_file, overrides={"offline_only": True if offline else None})
    except (CodeOwnersLocationError, ConfigError) as e:
        raise _fail(str(e))
    except OSError as e:
        raise _fail(f"cannot read project files: {e}")

    lookup = None
    if not cfg.offline_only:
        try:
            lookup = GitHubClient(cfg.github_token.get_secret_value())
        except GitHubClientError as e:
            raise _fail(str(e))

    document = parse_codeowners(context.contents)
    with console.status("Checking CODEOWNERS..."):
        issues = validate(document, cfg, lookup=lookup, paths=list_project_paths(path))
    return context, cfg, document, issues


def _print_issues(issues: list[ValidationIssue]) -> None:
    table = Table(title=f"CODEOWNERS issues ({len(issues)})")
    table.add_column("Line", justify="right", style="cyan")
    table.add_column("Severity", justify="center")
    table.add_column("Kind", style="magenta")
    table.add_column("Message")
    for issue in issues:
        severity = "[red]error[/red]" if issue.severity == Severity.ERROR else "[yellow]warning[/yellow]"
        table.add_row(str(issue.line_index), severity, issue.kind.value, escape(issue.message))
    console.print(table)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

@app.command()
def validate(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Path pointing to project root"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to canopus.toml"),
    offline: bool = typer.Option(False, "--offline", help="Only run checks that need no network"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Validate the CODEOWNERS configuration for a project."""
    _setup_logging(verbose)
    from canopus.validator import has_errors

    _, _, _, issues = _evaluate(path, config_file, offline)

    if not issues:
        console.print("[green]No issues found[/green]")
        return

    _print_issues(issues)
    if has_errors(issues):
        console.print("[red]Some issues found[/red]")
        raise typer.Exit(EXIT_ISSUES)
    console.print("[yellow]Some checks could not be verified[/yellow]")


# ---------------------------------------------------------------------------
# repair
# ---------------------------------------------------------------------------

@app.command()
def repair(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Path pointing to project root"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to canopus.toml"),
    offline: bool = typer.Option(False, "--offline", help="Only run checks that need no network"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview the repair without writing"),
    remove_lines: bool = typer.Option(False, "--remove-lines", help="Delete offending lines instead of commenting them out"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Repair the CODEOWNERS configuration for a project."""
    _setup_logging(verbose)
    from canopus.repairing import apply_repair, plan_repair, preview_repair, write_atomically

    context, _, document, issues = _evaluate(path, config_file, offline)

    policy = RepairPolicy.DELETE if remove_lines else RepairPolicy.COMMENT_OUT
    plan = plan_repair(document, issues, policy)

    skipped = sum(1 for issue in issues if not issue.offline)
    if skipped:
        console.print(f"[yellow]{skipped} online issue(s) need manual review and were not repaired[/yellow]")

    if plan.is_noop:
        console.print("[green]Nothing to repair[/green]")
        return

    if dry_run:
        console.print("Dry-run repairing...")
        for action in plan.changes():
            console.print(f"L{action.line_index} will be repaired ({escape('; '.join(action.reasons))})")
        console.print(Syntax(preview_repair(document, plan, context.location.name), "diff"))
        return

    try:
        write_atomically(context.location, apply_repair(document, plan))
    except OSError as e:
        raise _fail(f"cannot rewrite {context.location}: {e}")

    console.print(f"[green]Repaired {len(plan.changes())} line(s) in {context.location}[/green]")


if __name__ == "__main__":
    app()
