"""SiteWalker CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from sitewalker import __version__

TAGLINE = "Resilient, step-by-step browser workflows."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold cyan]sitewalker[/bold cyan] v{__version__}")
        console.print(f"  {TAGLINE}", style="dim")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="sitewalker",
    help=TAGLINE,
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show SiteWalker version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (debug) logging.",
    ),
) -> None:
    """SiteWalker -- drive multi-step browser workflows with retries, races and checkpoints."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s  %(message)s",
    )


# ── Register subcommands ──────────────────────────────────────────────────

from sitewalker.cli.run import run  # noqa: E402
from sitewalker.cli.validate import validate  # noqa: E402

app.command(name="run", help="Run a workflow definition in a browser.")(run)
app.command(name="validate", help="Validate workflow YAML without launching a browser.")(validate)
