"""
CLI interface for Guzzoline.

Reads JSON snapshots exported from the issue tracker and usage collector,
runs them through the core and renders the results.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from guzzoline.beads.classifier import partition_beads
from guzzoline.beads.grouping import group_by_convoy, group_stats
from guzzoline.beads.progress import summarize_epics
from guzzoline.config.loader import GuzzolineConfig, load_config
from guzzoline.core.aggregation import ROLLUP_KEYS, estimate_cost, rollup_usage
from guzzoline.core.budget import evaluate_budget, spend_by_period
from guzzoline.core.errors import GuzzolineError, InvalidInput, RecordFailure
from guzzoline.core.formatting import format_cost, format_tokens
from guzzoline.core.timestamps import parse_timestamp

app = typer.Typer()
console = Console()
logger = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1  # Input could not be read or computed at all


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Guzzoline - token cost and bead progress reports."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
        force=True,
    )
    if ctx.invoked_subcommand is None:
        console.print("Guzzoline - Use --help to see available commands")


def _load_records(path: Path, key: str) -> List[Any]:
    """Load a JSON snapshot: either a list or an object holding ``key``."""
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except UnicodeDecodeError as e:
            raise InvalidInput(f"{path} is not valid UTF-8: {e}")
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise GuzzolineError(f"{path} must contain a list or an object with a '{key}' list")
    logger.debug("Loaded %d records from %s", len(data), path)
    return data


def _load_config(config_path: Optional[Path]) -> GuzzolineConfig:
    return load_config(str(config_path) if config_path else None)


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(now, "--now") if now else None


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/] {escape(str(error))}")
    sys.exit(EXIT_CODE_FAIL)


def _emit_json(data: Dict[str, Any]) -> None:
    typer.echo(json.dumps(data, indent=2))


def _display_failures(failures: Sequence[RecordFailure]) -> None:
    """List records a batch skipped so the degraded figures are visible."""
    if not failures:
        return
    console.print(f"\n[bold yellow]{len(failures)} record(s) skipped[/]")
    for failure in failures:
        label = failure.record_id or f"#{failure.index}"
        console.print(f"  {escape(label)}: {failure.error} - {escape(failure.message)}")


@app.command()
def costs(
    usage_file: Path = typer.Argument(..., help="JSON file with token usage records"),
    by: str = typer.Option("worker", "--by", "-b", help=f"Roll-up dimension: {', '.join(ROLLUP_KEYS)}"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
):
    """Roll token usage up into costs per worker, rig, convoy, bead or model."""
    try:
        config = _load_config(config_path)
        records = _load_records(usage_file, "records")
        report = rollup_usage(records, by=by, table=config.pricing)
    except (GuzzolineError, OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        _fail(e)

    if as_json:
        _emit_json(report.to_dict())
        sys.exit(EXIT_CODE_OK)

    table = Table(title=f"Guzzoline by {by}")
    table.add_column(by.capitalize())
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Sessions", justify="right")
    for rollup in report.rollups:
        table.add_row(
            escape(rollup.key or "(none)"),
            format_tokens(rollup.tokens.total),
            format_cost(rollup.cost.total_cost),
            str(rollup.session_count),
        )
    console.print(table)
    console.print(
        f"Total: {format_tokens(report.total_tokens.total)} tokens, "
        f"{format_cost(report.total_cost.total_cost, compact=False)}"
    )
    _display_failures(report.failures)
    sys.exit(EXIT_CODE_OK)


@app.command()
def estimate(
    tokens: int = typer.Argument(..., help="Projected total token count"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to price with"),
    output_ratio: float = typer.Option(0.25, "--output-ratio", help="Share of output tokens"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    as_json: bool = typer.Option(False, "--json", help="Print the estimate as JSON"),
):
    """Estimate the cost of a projected token volume."""
    try:
        config = _load_config(config_path)
        pricing = config.pricing.get_pricing(model)
        breakdown = estimate_cost(tokens, pricing, output_ratio=output_ratio)
    except (GuzzolineError, OSError, yaml.YAMLError) as e:
        _fail(e)

    if as_json:
        _emit_json({"model": pricing.model_id, "tokens": tokens, "cost": breakdown.to_dict()})
        sys.exit(EXIT_CODE_OK)

    console.print(f"\n[bold]Estimate for {format_tokens(tokens)} tokens[/bold] ({pricing.model_id})")
    console.print(f"Input:  {format_cost(breakdown.input_cost, compact=False)}")
    console.print(f"Output: {format_cost(breakdown.output_cost, compact=False)}")
    console.print(f"Total:  {format_cost(breakdown.total_cost, compact=False)}")
    sys.exit(EXIT_CODE_OK)


@app.command()
def progress(
    beads_file: Path = typer.Argument(..., help="JSON file with bead records"),
    epic: Optional[str] = typer.Option(None, "--epic", "-e", help="Only report this epic"),
    as_json: bool = typer.Option(False, "--json", help="Print progress as JSON"),
):
    """Show progress for every epic referenced in a bead snapshot."""
    try:
        report = summarize_epics(_load_records(beads_file, "beads"))
    except (GuzzolineError, OSError, json.JSONDecodeError) as e:
        _fail(e)

    summaries = [s for s in report.epics if epic is None or s.epic_id == epic]

    if as_json:
        _emit_json({
            "epics": [s.to_dict() for s in summaries],
            "failures": [f.to_dict() for f in report.failures],
        })
        sys.exit(EXIT_CODE_OK)

    if not summaries:
        console.print("\n[dim]No epic children found.[/]")

    table = Table(title="Epic progress")
    table.add_column("Epic")
    for heading in ("Open", "Active", "Blocked", "Deferred", "Closed", "Done"):
        table.add_column(heading, justify="right")
    for summary in summaries:
        p = summary.progress
        table.add_row(
            escape(summary.epic_id), str(p.open), str(p.in_progress), str(p.blocked),
            str(p.deferred), str(p.closed), f"{p.percent_complete}%",
        )
    if summaries:
        console.print(table)
    _display_failures(report.failures)
    sys.exit(EXIT_CODE_OK)


@app.command()
def mail(
    beads_file: Path = typer.Argument(..., help="JSON file with bead records"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    now: Optional[str] = typer.Option(None, "--now", help="Reference time (ISO-8601)"),
    as_json: bool = typer.Option(False, "--json", help="Print groups as JSON"),
):
    """Group communication beads by convoy and flag stale ones."""
    try:
        config = _load_config(config_path)
        reference = _parse_now(now)
        partition = partition_beads(
            _load_records(beads_file, "beads"),
            now=reference,
            stale_threshold=config.stale_threshold,
        )
        groups = group_by_convoy(partition.communications)
        stats = [group_stats(g, reference, config.stale_threshold) for g in groups]
    except (GuzzolineError, OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        _fail(e)

    if as_json:
        _emit_json({
            "groups": [
                dict(group.to_dict(), stats=stat.to_dict())
                for group, stat in zip(groups, stats)
            ],
            "stale_ids": sorted(partition.stale_ids),
            "failures": [f.to_dict() for f in partition.failures],
        })
        sys.exit(EXIT_CODE_OK)

    for group, stat in zip(groups, stats):
        console.print(
            f"\n[bold]{escape(group.convoy_id or 'Ungrouped')}[/bold] "
            f"{stat.total} total, {stat.pending} pending, {stat.stale} stale"
        )
        for bead in group.beads:
            marker = "[dim](stale)[/]" if bead.id in partition.stale_ids else ""
            console.print(f"  {escape(bead.id)} {escape(bead.status)} {escape(bead.title or '')} {marker}")
    _display_failures(partition.failures)
    sys.exit(EXIT_CODE_OK)


@app.command()
def budget(
    usage_file: Path = typer.Argument(..., help="JSON file with token usage records"),
    config_path: Path = typer.Option(..., "--config", "-c", help="YAML config with a budget section"),
    now: Optional[str] = typer.Option(None, "--now", help="Reference time (ISO-8601)"),
    as_json: bool = typer.Option(False, "--json", help="Print budget status as JSON"),
):
    """Compare spend today, this week and this month against budget limits."""
    try:
        config = _load_config(config_path)
        spend = spend_by_period(
            _load_records(usage_file, "records"), now=_parse_now(now), table=config.pricing
        )
        status = evaluate_budget(config.budget, spend.as_mapping())
    except (GuzzolineError, OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        _fail(e)

    if as_json:
        _emit_json(dict(status.to_dict(), failures=[f.to_dict() for f in spend.failures]))
        sys.exit(EXIT_CODE_OK)

    console.print("\n[bold]Budget status[/bold]")
    console.print("-" * 40)
    for entry in status.periods:
        limit = format_cost(entry.limit, compact=False) if entry.limit else "no limit"
        console.print(
            f"{entry.period.capitalize():<8} {format_cost(entry.spent, compact=False)} "
            f"of {limit} ({entry.percent_used}%)"
        )
    for warning in status.warnings:
        color = "red" if warning.type.value == "exceeded_limit" else "yellow"
        console.print(f"[{color}]{warning.type.value}[/]: {warning.period} budget")
    _display_failures(spend.failures)
    sys.exit(EXIT_CODE_OK)


if __name__ == "__main__":
    app()
