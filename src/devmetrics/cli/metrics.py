"""Metrics commands for DevMetrics DB."""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TypeVar

import typer
from rich.table import Table

from devmetrics.cli.common import (
    DeveloperOption,
    OutputFormatOption,
    SinceOption,
    UntilOption,
    console,
    open_unit_of_work,
    parse_window,
    print_json,
    run_async_command,
)
from devmetrics.db.models import utc_now
from devmetrics.github.sync.enums import OutputFormat
from devmetrics.metrics import LeaderboardMetric, MetricsService
from devmetrics.schemas.metrics import ContributionLevel, format_duration

app = typer.Typer(help="Calculate and show developer metrics")

T = TypeVar("T")

# Heatmap cells, indexed by ContributionLevel
_LEVEL_GLYPHS = {
    ContributionLevel.NONE: "[dim]·[/dim]",
    ContributionLevel.LOW: "[green]░[/green]",
    ContributionLevel.MEDIUM: "[green]▒[/green]",
    ContributionLevel.HIGH: "[green]▓[/green]",
    ContributionLevel.MAX: "[bold green]█[/bold green]",
}


def _run(query: Callable[[MetricsService], Awaitable[T]]) -> T:
    """Run one MetricsService call inside its own unit of work."""

    async def _query() -> T:
        async with open_unit_of_work() as uow:
            return await query(MetricsService(uow))

    return run_async_command(_query(), error_prefix="Metrics failed")


@app.command("calculate")
def calculate(
    developer: DeveloperOption = None,
    days: int = typer.Option(30, "--days", help="Trailing window in days"),
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Recalculate cached metrics for one developer or for everyone.

    Examples:
        devmetrics metrics calculate
        devmetrics metrics calculate --developer 7 --days 90
    """
    if developer is not None:
        end = utc_now()
        snapshot = _run(
            lambda s: s.calculate_for_developer(developer, end - timedelta(days=days), end)
        )
        if output_format == OutputFormat.JSON:
            print_json(snapshot.model_dump(mode="json"))
            return
        console.print(f"[bold]Developer {developer}[/bold] ({days} days)")
        console.print(f"  Commits:        {snapshot.commits}")
        console.print(f"  Lines:          +{snapshot.lines_added}/-{snapshot.lines_removed}")
        console.print(f"  Pull requests:  {snapshot.pull_requests}")
        console.print(f"  Active days:    {snapshot.active_days}")
        if snapshot.average_response_time_hours is not None:
            console.print(
                f"  Avg to merge:   {format_duration(snapshot.average_response_time_hours)}"
            )
        return

    run = _run(lambda s: s.calculate_for_all_developers(days))
    if output_format == OutputFormat.JSON:
        print_json(run.to_dict())
    else:
        console.print(
            f"[bold]Metrics calculated[/bold]: {len(run.succeeded)} succeeded, "
            f"{len(run.failed)} failed"
        )
        for dev_id, error in run.failed.items():
            console.print(f"  [red]Developer {dev_id}:[/red] {error}")
    if not run.success:
        raise typer.Exit(1)


@app.command("velocity")
def velocity(
    developer: DeveloperOption = None,
    weeks: int = typer.Option(12, "--weeks", "-w", help="Number of weeks"),
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Weekly commits, lines and merged PRs with a commit trend."""
    result = _run(lambda s: s.get_code_velocity(developer, weeks))
    if output_format == OutputFormat.JSON:
        print_json(result.model_dump(mode="json"))
        return

    if result.is_empty:
        console.print("[yellow]No activity in the selected window.[/yellow]")
        return

    table = Table(title=f"Code velocity ({result.weeks_analyzed} weeks)")
    table.add_column("Week", style="cyan")
    table.add_column("Commits", justify="right")
    table.add_column("Lines +/-", justify="right")
    table.add_column("PRs merged", justify="right")
    table.add_column("Active days", justify="right")
    for week in result.weekly_data:
        table.add_row(
            week.label,
            str(week.commits),
            f"+{week.lines_added}/-{week.lines_removed}",
            str(week.prs_merged),
            str(week.active_days),
        )
    console.print(table)

    arrow = {1: "[green]↑[/green]", -1: "[red]↓[/red]"}.get(result.commit_trend, "→")
    console.print(
        f"  Totals: {result.total_commits} commits, {result.total_lines_changed} lines, "
        f"{result.total_prs_merged} PRs merged"
    )
    console.print(
        f"  Per week: {result.average_commits_per_week:.1f} commits, "
        f"{result.average_lines_per_week:.0f} lines, {result.average_prs_per_week:.1f} PRs"
    )
    console.print(f"  Trend: {arrow} {result.commit_trend_percent:+.1f}%")


@app.command("review-time")
def review_time(
    developer: DeveloperOption = None,
    since: SinceOption = None,
    until: UntilOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Time-to-merge statistics for PRs opened in a window (default 30 days)."""
    start, end = parse_window(since, until)
    result = _run(lambda s: s.get_review_time_metrics(developer, start, end))
    if output_format == OutputFormat.JSON:
        print_json(result.model_dump(mode="json"))
        return

    if result.is_empty:
        console.print("[yellow]No pull requests in the selected window.[/yellow]")
        return
    console.print(
        f"[bold]Review time[/bold] {result.start_date:%Y-%m-%d} to {result.end_date:%Y-%m-%d}"
    )
    console.print(
        f"  PRs: {result.total_prs_analyzed}, merged: {result.merged_prs} "
        f"({result.merge_rate_percent:.1f}%)"
    )
    if result.is_zero_merge:
        console.print("  [dim]No merged pull requests to time.[/dim]")
        return
    console.print(f"  Average: {result.average_time_to_merge_formatted}")
    console.print(f"  Median:  {format_duration(result.median_time_to_merge_hours)}")
    console.print(f"  Fastest: {format_duration(result.fastest_merge_hours)}")
    console.print(f"  Slowest: {format_duration(result.slowest_merge_hours)}")


@app.command("heatmap")
def heatmap(
    weeks: int = typer.Option(52, "--weeks", "-w", help="Number of weeks ending today"),
    developer: DeveloperOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Daily commit heatmap, one column per week."""
    result = _run(lambda s: s.get_contribution_heatmap(weeks, developer))
    if output_format == OutputFormat.JSON:
        print_json(result.model_dump(mode="json"))
        return

    # Rows are weekdays relative to the first day, columns are weeks
    rows = ["" for _ in range(7)]
    for index, day in enumerate(result.days):
        rows[index % 7] += _LEVEL_GLYPHS[day.level]
    for row in rows:
        console.print(row)
    console.print(
        f"  {result.total_contributions} commits from {result.start_date} to {result.end_date}, "
        f"busiest day {result.max_contributions}"
    )


@app.command("leaderboard")
def leaderboard(
    metric: LeaderboardMetric = typer.Option(  # noqa: B008
        LeaderboardMetric.COMMITS,
        "--metric",
        "-m",
        help="What to rank by",
    ),
    top: int = typer.Option(10, "--top", "-n", help="Number of entries"),
    since: SinceOption = None,
    until: UntilOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Top developers by commits, pull requests, lines changed or active days."""
    start, end = parse_window(since, until)
    entries = _run(lambda s: s.get_leaderboard(metric, top, start, end))
    if output_format == OutputFormat.JSON:
        print_json([e.model_dump(mode="json") for e in entries])
        return

    table = Table(title=f"Leaderboard: {metric.value.replace('_', ' ')}")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Developer")
    table.add_column("Value", justify="right")
    for entry in entries:
        table.add_row(str(entry.rank), entry.developer_name, str(entry.value))
    console.print(table)


@app.command("activity")
def activity(
    since: SinceOption = None,
    until: UntilOption = None,
    developer: DeveloperOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Daily commit counts (default: the last 30 days)."""
    start, end = parse_window(since, until)
    end = end or utc_now()
    start = start or end - timedelta(days=30)
    result = _run(lambda s: s.get_commit_activity(start, end, developer))
    if output_format == OutputFormat.JSON:
        print_json(result.model_dump(mode="json"))
        return

    peak = max(result.values, default=0)
    for label, value in zip(result.labels, result.values, strict=True):
        bar = "█" * round(value / peak * 40) if peak else ""
        console.print(f"  {label}  {value:>4} [green]{bar}[/green]")
    console.print(
        f"  Total: {result.total_commits} commits, {result.average_per_day:.2f} per day"
    )


@app.command("pr-stats")
def pr_stats(
    days: int = typer.Option(30, "--days", help="Trailing window in days"),
    developer: DeveloperOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Pull request counts per status and average review time."""
    result = _run(lambda s: s.get_pull_request_stats(days, developer))
    if output_format == OutputFormat.JSON:
        print_json(result.model_dump(mode="json"))
        return

    if not result.total_prs:
        console.print("[yellow]No pull requests in the selected window.[/yellow]")
        return
    table = Table(title=f"Pull requests (last {days} days)")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")
    for label, value in zip(result.labels, result.values, strict=True):
        table.add_row(label, str(value))
    console.print(table)
    if result.average_review_time_hours is not None:
        console.print(f"  Avg review time: {format_duration(result.average_review_time_hours)}")
