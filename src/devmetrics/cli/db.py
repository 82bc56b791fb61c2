"""Database commands for DevMetrics DB."""

import typer

from devmetrics.cli.common import console, run_async_command
from devmetrics.config import get_settings
from devmetrics.db import create_tables, drop_tables

app = typer.Typer(help="Manage the local database")


async def _reset() -> None:
    await drop_tables()
    await create_tables()


@app.command("init")
def init(
    reset: bool = typer.Option(
        False,
        "--reset",
        help="Drop existing tables first (deletes all data)",
    ),
) -> None:
    """Create the database tables.

    Production deployments should run the Alembic migrations instead.

    Examples:
        devmetrics db init
        devmetrics db init --reset
    """
    if reset:
        typer.confirm("Drop all tables and data?", abort=True)
        run_async_command(_reset(), error_prefix="Database reset failed")
    else:
        run_async_command(create_tables(), error_prefix="Database init failed")
    console.print(f"[green]Database ready[/green] at {get_settings().database_url}")
