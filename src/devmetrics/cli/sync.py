"""Sync commands for DevMetrics DB."""

from typing import Any

import typer

from devmetrics.cli.common import (
    OutputFormatOption,
    TokenOption,
    console,
    open_unit_of_work,
    print_json,
    run_async_command,
)
from devmetrics.config import get_settings
from devmetrics.github.sync import (
    LoggingNotifier,
    OutputFormat,
    SyncAccount,
    SyncOrchestrator,
    SyncResult,
)

app = typer.Typer(help="Sync repositories, commits and pull requests from GitHub")


def _account(account_id: str, token: str | None) -> SyncAccount:
    credential = token or get_settings().github_token
    if not credential:
        console.print("[red]Error:[/red] No token given and GITHUB_TOKEN not set in environment")
        raise typer.Exit(1)
    return SyncAccount(account_id=account_id, credential=credential)


def _orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator(uow_factory=open_unit_of_work, notifier=LoggingNotifier())


def _report(result: SyncResult, output_format: OutputFormat) -> None:
    """Print a sync result and exit 1 if the run failed."""
    data: dict[str, Any] = result.to_dict()

    if output_format == OutputFormat.JSON:
        print_json(data)
    else:
        summary = data["summary"]
        title = "Sync Complete" if result.success else "Sync Failed"
        style = "green" if result.success else "red"
        console.print(f"[bold {style}]{title}[/bold {style}] for {result.account_id}")
        console.print()
        repos = summary["repositories"]
        console.print(
            f"  Repositories:   [green]+{repos['added']}[/green] [blue]~{repos['updated']}[/blue]"
        )
        console.print(
            f"  Commits:        [green]+{summary['commits']['added']}[/green] "
            f"[blue]~{summary['commits']['updated']}[/blue]"
        )
        console.print(
            f"  Pull requests:  [green]+{summary['pull_requests']['added']}[/green] "
            f"[blue]~{summary['pull_requests']['updated']}[/blue]"
        )
        console.print(
            f"  Repos synced:   {summary['repositories_synced']} "
            f"({summary['repositories_failed']} failed)"
        )
        if summary["metrics_calculated"]:
            console.print(f"  Metrics:        {summary['metrics_calculated']} developers")
        console.print(f"  Duration:       {summary['duration_seconds']:.1f}s")

        failed = [r for r in data["repositories"] if not r["success"]]
        if failed:
            console.print()
            console.print("[bold]Failed repositories:[/bold]")
            for repo in failed:
                for step, error in repo["errors"].items():
                    console.print(f"  {repo['full_name']} ({step}): {error}")

        if not result.success:
            console.print()
            console.print(f"[red]Error:[/red] {result.error_message}")
            if result.retry_after_seconds is not None:
                console.print(f"  Retry after: {result.retry_after_seconds:.0f}s")

    if not result.success:
        raise typer.Exit(1)


@app.command("account")
def sync_account(
    account_id: str = typer.Argument(..., help="Account identifier the repositories belong to"),
    token: TokenOption = None,
    metrics: bool = typer.Option(
        False,
        "--metrics",
        help="Recalculate developer metrics after the sync",
    ),
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Full sync: repositories, then commits, then pull requests.

    Examples:
        devmetrics sync account acme
        devmetrics sync account acme --metrics --format json
        devmetrics -v sync account acme --token ghp_xxx
    """
    account = _account(account_id, token)
    if output_format == OutputFormat.TEXT:
        console.print(f"[dim]Syncing account {account_id}...[/dim]")

    result = run_async_command(
        _orchestrator().run_full_sync(account, calculate_metrics=metrics),
        error_prefix="Sync failed",
    )
    _report(result, output_format)


@app.command("commits")
def sync_commits(
    account_id: str = typer.Argument(..., help="Account identifier"),
    repository_id: int = typer.Argument(..., help="Internal repository id"),
    token: TokenOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Incremental commit sync of one repository (advances its watermark).

    Examples:
        devmetrics sync commits acme 3
    """
    account = _account(account_id, token)
    result = run_async_command(
        _orchestrator().sync_commits(account, repository_id),
        error_prefix="Sync failed",
    )
    _report(result, output_format)


@app.command("prs")
def sync_pull_requests(
    account_id: str = typer.Argument(..., help="Account identifier"),
    repository_id: int = typer.Argument(..., help="Internal repository id"),
    token: TokenOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Incremental pull request sync of one repository.

    Examples:
        devmetrics sync prs acme 3 --format json
    """
    account = _account(account_id, token)
    result = run_async_command(
        _orchestrator().sync_pull_requests(account, repository_id),
        error_prefix="Sync failed",
    )
    _report(result, output_format)
