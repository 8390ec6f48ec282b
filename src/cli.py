"""Click CLI for batch occupancy processing, report export and suggestions.

Provides three commands:
- ``process``: Run the reconstruction pipeline on a detection JSON file.
- ``report``: Export a table from a results JSON file as JSON or CSV.
- ``suggest``: Ask the configured language model for operating suggestions.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
import pandas as pd

from src.analytics.timeseries import GRANULARITIES
from src.insights.suggestions import SuggestionError, build_prompt, create_provider
from src.pipeline.processor import process_request
from src.utils.config import AppConfig, load_config
from src.utils.logger import setup_logger

logger = logging.getLogger(__name__)

TABLES = ("summary", "seats", "arrivals", "timeseries")


def _load_app_config(config_path: Optional[str]) -> AppConfig:
    return load_config(config_path) if config_path else AppConfig()


def _load_results(results_path: str) -> dict:
    with open(results_path) as f:
        results = json.load(f)
    if results.get("status") != "success":
        raise click.ClickException(
            f"Results file does not hold a successful run: {results_path}"
        )
    return results


@click.group()
@click.version_option(version="1.0.0")
def cli() -> None:
    """Seat Occupancy Analytics CLI - Seat sessions and visit trends from detections."""


@cli.command()
@click.option(
    "--input",
    "-i",
    "input_path",
    required=True,
    type=click.Path(exists=True),
    help="Input detections JSON file",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True),
    help="Configuration YAML",
)
@click.option(
    "--output",
    "-o",
    "output_dir",
    type=click.Path(),
    help="Output directory for results",
)
@click.option(
    "--start-time",
    "start_time",
    default=None,
    help="Ignore frames earlier than this ISO-8601 timestamp",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def process(
    input_path: str,
    config_path: Optional[str],
    output_dir: Optional[str],
    start_time: Optional[str],
    verbose: bool,
) -> None:
    """Process a detections file into seat sessions and occupancy trends.

    Example:
        occupancy-analytics process -i detections.json -o output/
    """
    config = _load_app_config(config_path)
    setup_logger(
        "src",
        log_file=config.logging.file,
        level="DEBUG" if verbose else config.logging.level,
    )

    out = Path(output_dir) if output_dir else Path(input_path).parent / "output"
    out.mkdir(parents=True, exist_ok=True)

    click.echo(f"Processing: {input_path}")
    payload = Path(input_path).read_text(encoding="utf-8")
    response = process_request(payload, start_time, config.engine)

    if response["status"] != "success":
        click.echo(f"Error: {response['message']}", err=True)
        raise SystemExit(1)

    response["source"] = Path(input_path).name
    response["generatedAt"] = datetime.now().isoformat()
    results_path = out / "results.json"
    with open(results_path, "w") as f:
        json.dump(response, f, indent=2)

    summary = response["summaryMetrics"]
    click.echo(f"\nResults saved to: {results_path}")
    if summary is None:
        click.echo("  No data in the selected range")
        return
    click.echo(f"  Seat sessions: {len(response['seatUsageTimeline'])}")
    click.echo(f"  Unique visitors: {summary['totalUniqueVisitors']}")
    click.echo(f"  Unique groups: {summary['totalUniqueGroups']}")
    click.echo(f"  Average stay: {summary['averageStayTime']} min")
    click.echo(
        f"  Peak occupancy: {summary['peakOccupancyCount']} "
        f"at {summary['peakOccupancyTime']}"
    )


@cli.command()
@click.option(
    "--results",
    "-r",
    required=True,
    type=click.Path(exists=True),
    help="Results JSON file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    help="Output file path",
)
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["json", "csv"]),
    default="json",
    help="Output format",
)
@click.option(
    "--table",
    "-t",
    type=click.Choice(TABLES),
    default="summary",
    help="Which result table to export",
)
@click.option(
    "--granularity",
    "-g",
    type=click.Choice(GRANULARITIES),
    default="15min",
    help="Series granularity for the timeseries table",
)
def report(
    results: str,
    output: Optional[str],
    fmt: str,
    table: str,
    granularity: str,
) -> None:
    """Export a table from processing results.

    Example:
        occupancy-analytics report -r output/results.json -t seats -f csv
    """
    data = _load_results(results)

    if table == "summary":
        rows: list[dict] = [data["summaryMetrics"] or {}]
    elif table == "seats":
        rows = [
            {**block, "personIds": ",".join(block["personIds"])}
            for block in data["seatUsageTimeline"]
        ]
    elif table == "arrivals":
        rows = data["arrivalTrendData"]
    else:
        rows = data["aggregatedTimeSeries"][granularity]

    output_path = Path(output) if output else Path(f"{table}.{fmt}")

    if fmt == "json":
        payload = rows[0] if table == "summary" else rows
        with open(output_path, "w") as f:
            json.dump(
                {"table": table, "data": payload, "report_generated_at": datetime.now().isoformat()},
                f,
                indent=2,
            )
    else:
        pd.DataFrame(rows).to_csv(output_path, index=False)

    click.echo(f"Report saved to: {output_path}")


@cli.command()
@click.option(
    "--results",
    "-r",
    required=True,
    type=click.Path(exists=True),
    help="Results JSON file",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True),
    help="Configuration YAML",
)
@click.option(
    "--granularity",
    "-g",
    type=click.Choice(GRANULARITIES),
    default="15min",
    help="Series granularity summarized in the prompt",
)
def suggest(results: str, config_path: Optional[str], granularity: str) -> None:
    """Generate operating suggestions from processing results.

    Example:
        occupancy-analytics suggest -r output/results.json
    """
    config = _load_app_config(config_path)
    data = _load_results(results)
    if data["summaryMetrics"] is None:
        raise click.ClickException("No data available to generate suggestions.")

    result = create_provider(config.insights)
    if not result.available:
        click.echo(f"Error: {result.error}", err=True)
        raise SystemExit(1)

    prompt = build_prompt(
        data["summaryMetrics"],
        data["aggregatedTimeSeries"][granularity],
        data.get("groupSizeDistribution", []),
        source_name=data.get("source", Path(results).name),
    )
    click.echo(f"Requesting suggestions from {result.provider.name}...")
    try:
        text = result.provider.generate(prompt)
    except SuggestionError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(text)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
