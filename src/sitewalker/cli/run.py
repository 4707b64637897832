"""sitewalker run -- Execute a workflow definition against a live site.

Resolves config, loads the workflow YAML, launches Playwright, runs the
steps in order, and prints per-step results and a summary with Rich.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from sitewalker.config import WalkerConfig
from sitewalker.engine.browser_session import BrowserSession
from sitewalker.engine.pipeline import StepResult, WorkflowOutcome
from sitewalker.errors import SiteWalkerError, WalkerConfigError, WorkflowDefinitionError
from sitewalker.workflows import WorkflowDefinition, build_workflow, load_workflow_file

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("sitewalker.cli.run")

DEFAULT_CONFIG_NAME = "sitewalker.yaml"


def _error_panel(title: str, message: str) -> None:
    console.print(Panel(message, title=f"[red]{title}[/red]", border_style="red"))


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    """Parse repeated ``--var key=value`` options."""
    variables: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            _error_panel(
                "Invalid --var",
                f"[red]Expected KEY=VALUE, got:[/red] {pair}",
            )
            raise typer.Exit(code=2)
        key, value = pair.split("=", 1)
        variables[key.strip()] = value
    return variables


def _build_config(
    config_path: Optional[Path],
    headless: Optional[bool],
    screenshot_dir: Optional[Path],
) -> WalkerConfig:
    """Build a WalkerConfig from CLI options, merging with a config file if present."""
    if config_path is None and Path(DEFAULT_CONFIG_NAME).is_file():
        config_path = Path(DEFAULT_CONFIG_NAME)

    if config_path is not None:
        config = WalkerConfig.from_file(config_path)
    else:
        config = WalkerConfig()

    # CLI options override config file values
    if headless is not None:
        config.headless = headless
    if screenshot_dir is not None:
        config.screenshot_dir = screenshot_dir
    return config


def _print_step_result(result: StepResult, total_steps: int) -> None:
    """Print a single step result line."""
    if result.passed:
        icon = "[bold green]✓[/bold green]"
        status = "[green]PASS[/green]"
    else:
        icon = "[bold red]✗[/bold red]"
        status = "[red]FAIL[/red]"

    console.print(
        f"  {icon} Step {result.index + 1}/{total_steps}: {result.name}  {status}"
        f"  [dim]{result.duration_seconds:.1f}s[/dim]"
    )
    if result.error is not None:
        error = f"{type(result.error).__name__}: {result.error}"
        error_short = error if len(error) <= 120 else error[:117] + "..."
        console.print(f"    [dim red]{error_short}[/dim red]")


def _print_summary_panel(outcome: WorkflowOutcome, total_steps: int) -> None:
    """Print the final summary panel."""
    if outcome.succeeded:
        border = "green"
        verdict = "[bold green]WORKFLOW SUCCEEDED[/bold green]"
    else:
        border = "red"
        verdict = f"[bold red]WORKFLOW FAILED[/bold red] [dim]({outcome.status.value})[/dim]"

    lines = [
        verdict,
        "",
        f"  Steps:        {len(outcome.completed_steps)}/{total_steps} completed",
        f"  Checkpoints:  {len(outcome.checkpoints)}",
        f"  Duration:     {outcome.duration_seconds:.1f}s",
    ]
    if outcome.results:
        lines.append(f"  Results:      {', '.join(outcome.results)} [dim](see --json)[/dim]")
    if outcome.failed:
        lines.append(f"  Failed step:  {outcome.failed_index} ({outcome.failed_step})")
        if outcome.completed_steps:
            lines.append("")
            lines.append("  [yellow]Completed steps are not rolled back.[/yellow]")

    console.print()
    console.print(Panel("\n".join(lines), border_style=border))
    console.print()


def _outcome_to_dict(outcome: WorkflowOutcome) -> dict:
    return {
        "workflow": outcome.workflow,
        "status": outcome.status.value,
        "failed_index": outcome.failed_index,
        "failed_step": outcome.failed_step,
        "error": f"{type(outcome.error).__name__}: {outcome.error}" if outcome.error else None,
        "completed_steps": outcome.completed_steps,
        "checkpoints": [
            {"label": c.label, "timestamp": c.timestamp.isoformat(), "path": str(c.path)}
            for c in outcome.checkpoints
        ],
        "results": outcome.results,
        "duration_seconds": outcome.duration_seconds,
    }


async def _run_workflow(
    definition: WorkflowDefinition, config: WalkerConfig
) -> tuple[WorkflowOutcome, int]:
    """Launch a browser, run ``definition`` on a fresh page, close the browser.

    Returns the outcome and the number of compiled steps.
    """
    async with BrowserSession(config) as session:
        async with session.claim(definition.name) as ctx:
            workflow = build_workflow(definition, ctx.actions, ctx.recorder)
            total = len(workflow)
            outcome = await workflow.run(
                recorder=ctx.recorder,
                config=config,
                on_step=lambda result: _print_step_result(result, total),
            )
            return outcome, total


def run(
    workflow_file: Path = typer.Argument(..., help="Workflow definition YAML file."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Config YAML. Defaults to ./{DEFAULT_CONFIG_NAME} when present.",
    ),
    headless: Optional[bool] = typer.Option(
        None,
        "--headless/--headed",
        help="Run the browser headless (default from config: headless).",
    ),
    screenshot_dir: Optional[Path] = typer.Option(
        None,
        "--screenshot-dir",
        "-s",
        help="Directory for checkpoint screenshots.",
    ),
    var: list[str] = typer.Option(
        [],
        "--var",
        "-e",
        help="Template variable as KEY=VALUE (repeatable).",
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="Override the workflow's start_url.",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Print the outcome as JSON on stdout.",
    ),
) -> None:
    """Run a workflow definition in a browser.

    \b
    Examples:
      sitewalker run workflows/amazon-add-to-cart.yaml
      sitewalker run flow.yaml --headed -e item=Airpods
      sitewalker run flow.yaml --url http://localhost:3000
      sitewalker run flow.yaml --json > outcome.json
    """
    variables = _parse_vars(var)

    try:
        walker_config = _build_config(config, headless, screenshot_dir)
    except WalkerConfigError as exc:
        _error_panel("Config Error", str(exc))
        raise typer.Exit(code=2)

    try:
        definition = load_workflow_file(workflow_file, variables)
    except WorkflowDefinitionError as exc:
        _error_panel("Workflow Error", str(exc))
        raise typer.Exit(code=2)

    if url:
        definition.start_url = url

    console.print()
    console.print(
        Panel(
            f"[bold]Workflow:[/bold]     {definition.name}\n"
            f"[bold]Steps:[/bold]        {len(definition.steps)}\n"
            f"[bold]Browser:[/bold]      {walker_config.browser} "
            f"({'headless' if walker_config.headless else 'headed'})\n"
            f"[bold]Screenshots:[/bold]  {walker_config.screenshot_dir}",
            title="[bold cyan]SiteWalker Run[/bold cyan]",
            border_style="cyan",
        )
    )

    try:
        outcome, total_steps = asyncio.run(_run_workflow(definition, walker_config))
    except SiteWalkerError as exc:
        _error_panel("Run Error", str(exc))
        raise typer.Exit(code=1)

    _print_summary_panel(outcome, total_steps)
    if output_json:
        output_console.print_json(json.dumps(_outcome_to_dict(outcome), default=str))

    if outcome.failed:
        raise typer.Exit(code=1)
