"""Main CLI application for DevMetrics DB."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from devmetrics import __version__
from devmetrics.cli import db as db_cmd
from devmetrics.cli import metrics as metrics_cmd
from devmetrics.cli import sync as sync_cmd
from devmetrics.config import get_settings
from devmetrics.logging import setup_logging

app = typer.Typer(
    name="devmetrics",
    help="GitHub activity sync and developer metrics.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"devmetrics version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """DevMetrics DB - sync GitHub activity and derive developer metrics."""
    settings = get_settings()
    log_config = settings.logging

    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


app.add_typer(db_cmd.app, name="db")
app.add_typer(sync_cmd.app, name="sync")
app.add_typer(metrics_cmd.app, name="metrics")


if __name__ == "__main__":
    app()
