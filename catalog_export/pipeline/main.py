"""CLI entry point for the catalog export pipeline.

Runs a single export with argument parsing, progress indicators and a result
summary. The exit code is 0 only when the export file was stored.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from catalog_export import __version__
from catalog_export.models.config import ConfigManager, PipelineConfig
from catalog_export.models.data_models import PipelineOutcome, PipelineState
from catalog_export.monitoring.performance import format_file_size
from catalog_export.pipeline.orchestrator import ExportPipeline
from catalog_export.pipeline.output import JSONOutputFormatter


console = Console()

STATE_LABELS = {
    PipelineState.AUTHENTICATING: "Authenticating",
    PipelineState.FETCHING: "Fetching products",
    PipelineState.ENRICHING: "Enriching categories and inventory",
    PipelineState.ASSEMBLING: "Assembling CSV",
    PipelineState.STORING: "Storing export",
}


def parse_fields(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma separated field list; ``None`` keeps the configured fields."""
    if value is None:
        return None
    return [field.strip() for field in value.split(",") if field.strip()]


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(dir_okay=False, path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option(
    "--base-url",
    "-u",
    help="Commerce REST base URL (overrides config)",
)
@click.option(
    "--token",
    help="Commerce bearer token (overrides config)",
)
@click.option(
    "--storage",
    "-s",
    type=click.Choice(["s3", "files"]),
    help="Storage provider (overrides config)",
)
@click.option(
    "--fields",
    "-f",
    help="Comma separated export fields, e.g. sku,name,price (overrides config)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default="out/result.json",
    help="Result JSON file path",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress output (useful for CI/CD)",
)
@click.version_option(version=__version__, prog_name="catalog-export")
def main(
    config: Path,
    base_url: Optional[str],
    token: Optional[str],
    storage: Optional[str],
    fields: Optional[str],
    output: Path,
    log_level: Optional[str],
    no_progress: bool,
) -> None:
    """
    Catalog Export - product catalog to compressed CSV.

    Fetches every product from the Commerce API, enriches it with category
    names and stock figures, and stores a gzip-compressed CSV under a fixed
    name so its download URL never changes.

    Examples:

        # Run with config/config.yaml
        $ catalog-export

        # Export a subset of columns to the local file service
        $ catalog-export --storage files --fields sku,name,qty

        # Point at the bundled mock API
        $ catalog-export --base-url http://127.0.0.1:8000/rest/V1 --token mock-admin-token
    """
    try:
        cli_overrides = {
            "commerce_base_url": base_url,
            "commerce_token": token,
            "storage_provider": storage,
            "export_fields": parse_fields(fields),
            "log_level": log_level.upper() if log_level else None,
        }

        pipeline_config = ConfigManager(config).load_config(cli_overrides)

        _display_config_summary(pipeline_config, no_progress)

        outcome = asyncio.run(_run_pipeline_with_progress(pipeline_config, no_progress))

        JSONOutputFormatter().save(outcome, str(output))

        _display_outcome(outcome, output, no_progress)

        stored = outcome.result is not None and outcome.result.stored
        sys.exit(0 if stored else 1)

    except KeyboardInterrupt:
        console.print("\n[yellow]Export interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        sys.exit(1)


async def _run_pipeline_with_progress(config: PipelineConfig, no_progress: bool) -> PipelineOutcome:
    if no_progress:
        console.print("[cyan]Running export...[/cyan]")
        return await ExportPipeline(config).run()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Starting...", total=None)

        def show_state(state: PipelineState) -> None:
            progress.update(task_id, description=f"[cyan]{STATE_LABELS.get(state, state.value)}...")

        outcome = await ExportPipeline(config, on_state=show_state).run()
        progress.update(task_id, description="[green]Finished", completed=1, total=1)
        return outcome


def _display_config_summary(config: PipelineConfig, no_progress: bool) -> None:
    if no_progress:
        return

    console.print("\n[bold cyan]Export Configuration[/bold cyan]")
    console.print(f"  Commerce API: {config.commerce_base_url}")
    console.print(f"  Fields: {', '.join(config.export_fields)}")
    console.print(f"  Storage: {config.storage_provider} ({config.csv_filename})")
    console.print(f"  Page Size: {config.page_size} (max {config.max_pages} pages)")
    console.print(f"  Timeout: {config.total_timeout}s")
    console.print()


def _display_outcome(outcome: PipelineOutcome, output_path: Path, no_progress: bool) -> None:
    """Display final outcome summary."""
    result = outcome.result

    if not outcome.succeeded or result is None:
        failure = outcome.failure
        state = failure.state.value if failure else "unknown"
        message = failure.message if failure else "unknown error"
        console.print(f"[red]✗ Export failed while {state}:[/red] {message}")
        console.print(f"Result saved to: {output_path}")
        return

    if no_progress:
        if result.stored:
            console.print(f"✓ Export complete: {result.record_count} products")
            console.print(f"✓ Download URL: {result.storage.url}")
        else:
            console.print(f"✗ Export not stored: {result.error['message']}")
        console.print(f"Result saved to: {output_path}")
        return

    title = "[bold green]Export Complete![/bold green]" if result.stored else "[bold yellow]Export Not Stored[/bold yellow]"
    console.print(f"\n{title}\n")

    table = Table(title="Export Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Products", str(result.record_count))
    table.add_row("Categories", str(result.category_count))
    if result.compression_stats:
        stats = result.compression_stats
        table.add_row("CSV Size", format_file_size(stats.original_size))
        table.add_row("Compressed", f"{format_file_size(stats.compressed_size)} ({stats.savings_percent}% saved)")
    table.add_row("Elapsed", f"{result.elapsed_seconds:.2f}s")
    if result.memory_peak_bytes is not None:
        table.add_row("Peak Memory", format_file_size(result.memory_peak_bytes))
    if result.stored:
        table.add_row("Download URL", result.storage.url)
    else:
        table.add_row("Storage Error", result.error["message"])

    console.print(table)
    console.print()
    console.print(f"[bold]Result saved to:[/bold] {output_path}")
    console.print()


if __name__ == "__main__":
    main()
