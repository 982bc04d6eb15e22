"""Mini README: Entry point CLI for DraftBudget.

This script exposes a Typer CLI to serve the JSON API with uvicorn, print
the saved budget as an indented tree with rolled-up totals, and export it as
a JSON record. Settings come from ``DRAFTBUDGET_*`` environment variables
unless overridden by options.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
import uvicorn

from draftbudget.budget import BudgetLine
from draftbudget.configuration import get_settings
from draftbudget.logging_utils import set_log_level
from draftbudget.serialization import export_json
from draftbudget.storage import BudgetStore
from draftbudget.utils import date_iso, format_amount

cli = typer.Typer(help="Serve, inspect and export DraftBudget budgets.")


@cli.callback()
def main(
    log_level: str = typer.Option("info", help="Root log level (debug, info, warning, error)."),
) -> None:
    """Configure logging before any command runs."""

    try:
        set_log_level(log_level)
    except ValueError as error:
        raise typer.BadParameter(str(error), param_hint="--log-level") from error


def _load_budget(path: Optional[Path]) -> BudgetLine:
    """Load the saved budget or exit with status 1."""

    store = BudgetStore(path)
    try:
        budget = store.load()
    except ValueError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    if budget is None:
        typer.echo(f"No saved budget at {store.path}", err=True)
        raise typer.Exit(code=1)
    return budget


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the JSON API using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port

    # Browsers cannot open the 0.0.0.0 bind-all address, so point them at localhost.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        f"Starting DraftBudget on {effective_host}:{effective_port}.\n"
        f"API available at http://{browser_host}:{effective_port}/budget"
    )
    uvicorn.run(
        "draftbudget.interface.web_app:create_default_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


@cli.command()
def show(
    path: Optional[Path] = typer.Option(None, help="Budget file (defaults to the data directory)."),
) -> None:
    """Print the saved budget as an indented tree."""

    budget = _load_budget(path)
    decimals = budget.settings.show_decimals

    def echo_line(line: BudgetLine) -> None:
        """Print one line followed by its overheads."""

        indent = "  " * line.level
        typer.echo(
            f"{indent}{line.index:<8} {line.title:<32} "
            f"{format_amount(line.total, decimals):>16} {line.currency}  "
            f"{date_iso(line.start)} -> {date_iso(line.end)}"
        )
        for overhead in line.overhead:
            typer.echo(
                f"{indent}  + {overhead.title} {overhead.percentage:.2%}: "
                f"{format_amount(overhead.total, decimals)} {overhead.currency}"
            )

    budget.recurse(echo_line)
    if budget.rate_unavailable:
        typer.echo("Some exchange rates are unavailable; totals are incomplete.")


@cli.command()
def export(
    path: Optional[Path] = typer.Option(None, help="Budget file (defaults to the data directory)."),
    output: Optional[Path] = typer.Option(None, help="Write the JSON record here instead of stdout."),
) -> None:
    """Export the saved budget as a JSON record."""

    budget = _load_budget(path)
    text = export_json(budget)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Budget exported to {output}")


if __name__ == "__main__":
    cli()
