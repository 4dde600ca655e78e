"""CLI entry point for testrail-sync."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from testrail_sync.models.config import BridgeConfig
from testrail_sync.models.external import ExternalSuite
from testrail_sync.models.remote import StatusCode
from testrail_sync.orchestrator import Orchestrator, SyncOptions
from testrail_sync.reporter.json_report import generate_json_report

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> BridgeConfig:
    try:
        cfg = BridgeConfig.load(path)
    except FileNotFoundError:
        try:
            cfg = BridgeConfig.from_env()
        except EnvironmentError:
            console.print(f"[red]Config file not found: {path}[/red]")
            console.print("Run 'testrail-sync init' or set TESTRAIL_URL, "
                          "TESTRAIL_USERNAME and TESTRAIL_API_KEY.")
            sys.exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid config {path}:[/red] {e}")
        sys.exit(1)
    if not logging.getLogger().isEnabledFor(logging.DEBUG):
        logging.getLogger().setLevel(cfg.log_level.upper())
    return cfg


def _run(cfg: BridgeConfig, operation):
    async def _main():
        async with Orchestrator(cfg) as orchestrator:
            return await operation(orchestrator)
    return asyncio.run(_main())


def _print_errors(errors: list[str]) -> None:
    for err in errors:
        console.print(f"  [red]•[/red] {err}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Sync automated test results into TestRail and analyze run history."""
    setup_logging(verbose)


@cli.command()
@click.option("--url", prompt="TestRail URL", help="TestRail base URL")
@click.option("--username", prompt="TestRail username", help="TestRail user email")
@click.option("--config", "-c", default="testrail-sync.json", help="Config file path")
def init(url: str, username: str, config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    # Written as a plain dict so the key stays an env reference on disk.
    payload = {
        name: field.default for name, field in BridgeConfig.model_fields.items()
        if not field.is_required()
    }
    payload.update(
        base_url=url.rstrip("/"), username=username, api_key="env:TESTRAIL_API_KEY",
    )
    with open(config_path, "w") as f:
        json.dump(payload, f, indent=2)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nExport your API key and check the connection:")
    console.print("  [blue]export TESTRAIL_API_KEY=...[/blue]")
    console.print("  [blue]testrail-sync check[/blue]")


@cli.command()
@click.option("--config", "-c", default="testrail-sync.json", help="Config file path")
def check(config: str) -> None:
    """Check the TestRail connection and credentials."""
    cfg = _load_config(config)
    report = _run(cfg, lambda o: o.check_connection())
    if not report.success:
        console.print("[red]Connection failed[/red]")
        _print_errors(report.errors)
        sys.exit(1)
    name = (report.user or {}).get("name", cfg.username)
    console.print(f"[green]Connected to {cfg.base_url} as {name}[/green]")


@cli.command()
@click.argument("suite_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--project-id", "-p", type=int, required=True, help="TestRail project ID")
@click.option("--create-cases/--no-create-cases", default=True,
              help="Create cases that have no title match")
@click.option("--section-id", type=int, default=None, help="Section for new cases")
@click.option("--milestone-id", type=int, default=None, help="Milestone for the run")
@click.option("--environment", default=None, help="Environment name for the run description")
@click.option("--build-number", default=None, help="Build number / version")
@click.option("--close-run", is_flag=True, help="Close the run after submitting")
@click.option("--output", "-o", default=None, help="Write the sync report as JSON")
@click.option("--config", "-c", default="testrail-sync.json", help="Config file path")
def sync(
    suite_file: str, project_id: int, create_cases: bool, section_id: int | None,
    milestone_id: int | None, environment: str | None, build_number: str | None,
    close_run: bool, output: str | None, config: str,
) -> None:
    """Submit the results in SUITE_FILE (JSON) to a TestRail run."""
    cfg = _load_config(config)
    try:
        with open(suite_file) as f:
            suite = ExternalSuite.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Invalid suite file {suite_file}:[/red] {e}")
        sys.exit(1)

    options = SyncOptions(
        create_cases_if_missing=create_cases,
        section_id=section_id,
        milestone_id=milestone_id,
        environment=environment,
        build_number=build_number,
        close_run=close_run,
    )
    report = _run(cfg, lambda o: o.sync(project_id, suite, options))

    table = Table(title=f"Sync: {suite.name}")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", f"R{report.run_id}" if report.run_id else "-")
    table.add_row("Results", str(report.total_results))
    table.add_row("Submitted", f"[green]{report.submitted_results}[/green]")
    table.add_row("Cases created", str(report.created_cases))
    if report.submission:
        table.add_row("Batches", str(report.submission.batch_count))
    console.print(table)
    _print_errors(report.errors)

    if output:
        generate_json_report(report, Path(output), kind="sync")
        console.print(f"  JSON report: [blue]{output}[/blue]")
    if not report.success:
        sys.exit(1)


@cli.command()
@click.argument("baseline_run_id", type=int)
@click.argument("current_run_id", type=int)
@click.option("--include-new", is_flag=True, help="List cases only in the current run")
@click.option("--include-missing", is_flag=True, help="List cases only in the baseline run")
@click.option("--output", "-o", default=None, help="Write the comparison as JSON")
@click.option("--config", "-c", default="testrail-sync.json", help="Config file path")
def compare(
    baseline_run_id: int, current_run_id: int, include_new: bool,
    include_missing: bool, output: str | None, config: str,
) -> None:
    """Compare two runs and list regressions and improvements."""
    cfg = _load_config(config)
    report = _run(cfg, lambda o: o.compare(
        baseline_run_id, current_run_id, include_new, include_missing,
    ))
    if not report.success:
        console.print("[red]Comparison failed[/red]")
        _print_errors(report.errors)
        sys.exit(1)

    comparison = report.comparison
    console.print(
        f"R{baseline_run_id} → R{current_run_id}: {comparison.common_case_count} common cases, "
        f"{len(comparison.status_changes)} status changes"
    )
    if comparison.status_changes:
        table = Table(title="Status changes")
        table.add_column("Case")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Kind")
        for change in comparison.status_changes:
            kind = ("[red]regression[/red]" if change.is_regression
                    else "[green]improvement[/green]" if change.is_improvement else "")
            table.add_row(f"C{change.case_id}", _status_name(change.from_status),
                          _status_name(change.to_status), kind)
        console.print(table)
    if include_new:
        console.print(f"New cases: {len(comparison.new_cases)}")
    if include_missing:
        console.print(f"Missing cases: {len(comparison.missing_cases)}")

    if output:
        generate_json_report(report, Path(output), kind="comparison")
        console.print(f"  JSON report: [blue]{output}[/blue]")


@cli.command()
@click.argument("project_id", type=int)
@click.option("--start", default=None, help="Start date (YYYY-MM-DD)")
@click.option("--end", default=None, help="End date (YYYY-MM-DD)")
@click.option("--output", "-o", default=None, help="Write the trend report as JSON")
@click.option("--config", "-c", default="testrail-sync.json", help="Config file path")
def trends(
    project_id: int, start: str | None, end: str | None,
    output: str | None, config: str,
) -> None:
    """Show pass-rate trends across the project's recent runs."""
    if bool(start) != bool(end):
        raise click.UsageError("--start and --end must be given together")
    cfg = _load_config(config)
    time_range = {"start": start, "end": end} if start else None
    report = _run(cfg, lambda o: o.trends(project_id, time_range))
    if not report.success:
        console.print("[red]Trend analysis failed[/red]")
        _print_errors(report.errors)
        sys.exit(1)

    table = Table(title=f"Trends {report.period['start']} → {report.period['end']}")
    table.add_column("Date")
    table.add_column("Run")
    table.add_column("Total")
    table.add_column("Pass rate")
    table.add_column("Completion")
    for point in report.trend_points:
        table.add_row(
            point.date, f"R{point.run_id}", str(point.stats.total_tests),
            f"{point.stats.pass_rate:.1f}%", f"{point.stats.completion_rate:.1f}%",
        )
    console.print(table)
    console.print(
        f"Average pass rate [bold]{report.avg_pass_rate:.1f}%[/bold], "
        f"completion [bold]{report.avg_completion_rate:.1f}%[/bold], "
        f"direction [bold]{report.trend_direction}[/bold]"
    )

    if output:
        generate_json_report(report, Path(output), kind="trends")
        console.print(f"  JSON report: [blue]{output}[/blue]")


def _status_name(status_id: int) -> str:
    try:
        return StatusCode(status_id).name.lower()
    except ValueError:
        return str(status_id)


if __name__ == "__main__":
    cli()
