"""
Harvester - CLI Interface

Command-line interface using Typer for running and inspecting extraction jobs.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from harvester import __version__
from harvester.orchestration import (
    ExtractionError,
    ExtractionPaused,
    ExtractionProgress,
    ExtractionStarted,
    JobConfig,
    JobController,
    JobSnapshot,
)
from harvester.scrapers import ScraperFactory
from harvester.shared.config import settings
from harvester.shared.constants import EventName, JobState
from harvester.shared.exceptions import HarvesterError
from harvester.storage import JsonlSink

app = typer.Typer(
    name="harvester",
    help="Rate-limited, resumable extraction job engine",
    add_completion=False,
)
console = Console()


@app.command()
def run(
    source_id: str = typer.Argument(..., help="Extraction target id (also the job id)"),
    scraper: str = typer.Option("http", "--scraper", "-s", help="Registered scraper name"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Items per batch"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Concurrent fetches per window"),
    max_items: Optional[int] = typer.Option(None, "--max", "-m", help="Maximum items (0 = all)"),
    requests_per_hour: Optional[int] = typer.Option(None, "--rph", help="Request budget per hour"),
    max_retries: Optional[int] = typer.Option(None, "--retries", help="Retries per failed call"),
    attachments: Optional[bool] = typer.Option(
        None,
        "--attachments/--no-attachments",
        help="Download item attachments",
    ),
    output: Path = typer.Option(
        Path(settings.storage.results_path),
        "--output",
        "-o",
        help="JSON Lines file for fetched records",
    ),
    export: Optional[Path] = typer.Option(
        None,
        "--export",
        "-e",
        help="Write a job report (.json, .csv or .parquet) when done",
    ),
):
    """
    Run one extraction job to completion.

    Example:
        harvester run job-42 --batch-size 10 --rph 60 --export output/reports/job-42.json
    """
    try:
        config = JobConfig.from_settings(
            settings,
            batch_size=batch_size,
            concurrency=concurrency,
            max_items=max_items,
            requests_per_hour=requests_per_hour,
            max_retries=max_retries,
            download_attachments=attachments,
        )
        source = ScraperFactory.get(scraper, config=settings.scraper)
    except (ValueError, HarvesterError) as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        raise typer.Exit(2)

    console.print(f"\n[bold blue]Extracting:[/] {source_id}")
    console.print(f"[dim]Batch size: {config.batch_size}, concurrency: {config.concurrency}[/]")
    console.print(f"[dim]Budget: {config.requests_per_hour} requests/hour[/]")
    console.print()

    controller = JobController(source, JsonlSink(output))
    snapshot = asyncio.run(_run_async(controller, source_id, config))

    _print_summary(snapshot)

    if export is not None:
        try:
            path = controller.export_results(export)
        except HarvesterError as e:
            console.print(f"[red]Export failed: {e}[/]")
            raise typer.Exit(1)
        console.print(f"\n[bold]Report:[/] {path}")

    console.print()
    if snapshot.state is not JobState.COMPLETED:
        raise typer.Exit(1)


async def _run_async(controller: JobController, source_id: str, config: JobConfig) -> JobSnapshot:
    """Start the job and render its events as a progress bar."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("Listing work items...", total=None)

        def on_started(event: ExtractionStarted) -> None:
            progress.update(task, description="Extracting", total=event.estimated_total)

        def on_progress(event: ExtractionProgress) -> None:
            progress.update(task, completed=event.current, description=event.current_item or "Extracting")

        def on_paused(event: ExtractionPaused) -> None:
            progress.update(task, description=f"[yellow]Paused ({event.reason})")

        def on_error(event: ExtractionError) -> None:
            style = "yellow" if event.recoverable else "red"
            progress.console.print(f"  [{style}]{event.code}[/] {event.context}: {event.message}")

        controller.subscribe(EventName.EXTRACTION_STARTED, on_started)
        controller.subscribe(EventName.EXTRACTION_PROGRESS, on_progress)
        controller.subscribe(EventName.EXTRACTION_PAUSED, on_paused)
        controller.subscribe(EventName.EXTRACTION_ERROR, on_error)

        try:
            await controller.start(source_id, config)
            return await controller.wait()
        finally:
            await controller.shutdown()


def _print_summary(snapshot: JobSnapshot) -> None:
    color = {
        JobState.COMPLETED: "green",
        JobState.STOPPED: "yellow",
        JobState.FAILED: "red",
    }.get(snapshot.state, "white")

    table = Table(title="Job Summary")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Job", snapshot.job_id or "-")
    table.add_row("State", f"[{color}]{snapshot.state}[/]")
    table.add_row("Reason", str(snapshot.completion_reason or "-"))
    table.add_row("Items", f"{snapshot.processed_count}/{snapshot.total_items}")
    table.add_row("Succeeded", str(snapshot.succeeded_count))
    table.add_row("Failed", str(snapshot.failed_count))
    table.add_row("Batches", f"{snapshot.completed_batches}/{snapshot.total_batches}")
    table.add_row("Errors", str(len(snapshot.errors)))
    table.add_row("Elapsed", f"{snapshot.elapsed_ms / 1000:.1f}s")

    console.print()
    console.print(table)


@app.command()
def config():
    """Show the effective configuration."""
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    sections = {
        "batch": settings.batch,
        "rate_limit": settings.rate_limit,
        "retry": settings.retry,
        "scraper": settings.scraper,
        "storage": settings.storage,
    }
    for section, values in sections.items():
        for key, value in values.model_dump().items():
            if key == "password" and value is not None:
                value = "********"
            table.add_row(f"{section}.{key}", str(value))

    console.print(table)


@app.command()
def serve(
    host: str = typer.Option(settings.app.api_host, "--host", "-h", help="Host to bind"),
    port: int = typer.Option(settings.app.api_port, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
):
    """Start the API server."""
    import uvicorn

    console.print(f"[bold green]Starting API server at http://{host}:{port}[/]")
    console.print("[dim]Press Ctrl+C to stop[/]\n")

    uvicorn.run(
        "harvester.gateway.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]Harvester[/] v{__version__}")
    console.print("[dim]Rate-limited, resumable extraction job engine[/]")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
