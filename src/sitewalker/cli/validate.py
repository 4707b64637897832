"""sitewalker validate -- Parse and validate workflow YAML without a browser.

Reports definition problems (unknown actions, missing selectors, bad retry
policies, duplicate step names) before committing to a live run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sitewalker.workflows import validate_workflow_data

console = Console(stderr=True)

_SEVERITY_RANK = {"error": 0, "warning": 1}
_SEVERITY_LABEL = {"error": "[bold red]error[/bold red]", "warning": "[yellow]warning[/yellow]"}


def _validate_file(path: Path) -> list[dict[str, Any]]:
    """Validate one workflow file. Returns a list of issue dicts."""
    if not path.is_file():
        return [{"severity": "error", "field": "", "message": f"File not found: {path}"}]
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        return [{"severity": "error", "field": "yaml", "message": f"YAML parse error: {exc}"}]
    return validate_workflow_data(data)


def _count(issues: list[dict[str, Any]], severity: str) -> int:
    return sum(1 for i in issues if i["severity"] == severity)


def _print_file_result(path: Path, issues: list[dict[str, Any]]) -> None:
    """Print one status line per file, then a table of its issues."""
    if not issues:
        console.print(f"  [green]✓[/green] {path}  [green]OK[/green]")
        return

    n_errors, n_warnings = _count(issues, "error"), _count(issues, "warning")
    marker = "[red]✗[/red]" if n_errors else "[yellow]![/yellow]"
    console.print(f"  {marker} {path}  [dim]{n_errors} error(s), {n_warnings} warning(s)[/dim]")

    table = Table(box=box.SIMPLE, show_header=True, header_style="dim", padding=(0, 1))
    table.add_column("Severity", no_wrap=True)
    table.add_column("Location", style="cyan", no_wrap=True)
    table.add_column("Problem")
    for issue in sorted(issues, key=lambda i: _SEVERITY_RANK.get(i["severity"], len(_SEVERITY_RANK))):
        table.add_row(
            _SEVERITY_LABEL.get(issue["severity"], issue["severity"]),
            issue.get("field") or "-",
            issue["message"],
        )
    console.print(table)


def validate(
    workflow_files: list[Path] = typer.Argument(..., help="Workflow YAML file(s) to validate."),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat warnings as failures.",
    ),
) -> None:
    """Validate workflow definition files without launching a browser.

    \b
    Examples:
      sitewalker validate workflows/*.yaml
      sitewalker validate flow.yaml --strict
    """
    results = [(path, _validate_file(path)) for path in workflow_files]

    console.print()
    for path, issues in results:
        _print_file_result(path, issues)
    console.print()

    n_errors = sum(_count(issues, "error") for _, issues in results)
    n_warnings = sum(_count(issues, "warning") for _, issues in results)
    failed = n_errors > 0 or (strict and n_warnings > 0)

    if failed:
        reason = "errors" if n_errors else "warnings (--strict)"
        console.print(
            Panel(
                f"[bold red]{len(workflow_files)} file(s) checked, validation failed on {reason}.[/bold red]\n"
                f"{n_errors} error(s), {n_warnings} warning(s)",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)

    if n_warnings:
        console.print(
            Panel(
                f"[yellow]{len(workflow_files)} file(s) valid with {n_warnings} warning(s).[/yellow] "
                "Pass [bold]--strict[/bold] to fail on them.",
                border_style="yellow",
            )
        )
    else:
        console.print(
            Panel(f"[bold green]{len(workflow_files)} file(s) valid.[/bold green]", border_style="green")
        )
