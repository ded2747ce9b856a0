#!/usr/bin/env python3
"""
Newsroom CLI - command line interface for the newsroom pipeline.

Commands:
    init-db     Create database tables
    run         Run the pipeline in a given mode
    status      Show latest run and scheduler stats
    collect     Collect feeds now
    score       Score unscored raw items
    validate    Validate article text from a file
    publish     Publish a validated article
    daily       Run the scheduler's daily pass once
    serve       Start the API server
"""
import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

app = typer.Typer(
    name="newsroom",
    help="Newsroom Pipeline CLI",
    add_completion=False,
)
console = Console()


def build_pipeline():
    """Ledger, gateway and orchestrator wired from settings."""
    from newsroom.core.config import get_settings
    from newsroom.core.dependencies import get_redis_client
    from newsroom.database import async_session
    from newsroom.services.pipeline import PipelineOrchestrator, RunLedger, build_stage_gateway

    settings = get_settings()
    ledger = RunLedger(get_redis_client(), settings)
    gateway = build_stage_gateway(async_session, ledger=ledger, settings=settings)
    orchestrator = PipelineOrchestrator(gateway, async_session, ledger, settings)
    return ledger, gateway, orchestrator


async def init_services():
    from newsroom.database import init_db
    await init_db()


def print_run(report: dict):
    """Render a run report as a table."""
    table = Table(title=f"Run {report['pipeline_run_id']} ({report['mode']})", show_header=True)
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Count", justify="right")

    counts = {
        "collect": "collected",
        "score": "scored",
        "generate": "generated",
        "validate": "validated",
        "publish": "published",
    }
    colors = {"ok": "green", "partial": "yellow", "failed": "red", "skipped": "dim"}
    for stage, key in counts.items():
        status = report["worker_status"].get(stage, "skipped")
        color = colors.get(status, "white")
        table.add_row(stage, f"[{color}]{status}[/{color}]", str(report[key]))

    console.print(table)
    console.print(f"[dim]Duration: {report['duration_ms']}ms[/dim]")
    if report["errors"]:
        console.print(f"\n[yellow]{len(report['errors'])} errors:[/yellow]")
        for error in report["errors"]:
            console.print(f"  [red]•[/red] {error}")


@app.command("init-db")
def init_db_command():
    """Create database tables."""
    asyncio.run(init_services())
    console.print("[green]Database tables ready[/green]")


@app.command()
def run(
    mode: str = typer.Option("full", "--mode", "-m", help="collect, score, generate, validate, publish or full"),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore the run lease"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Run the pipeline.

    Examples:
        newsroom run                 # Full run
        newsroom run -m collect      # Collect only
        newsroom run -m publish -f   # Publish even if another publish run holds the lease
    """
    async def _run():
        await init_services()
        _, _, orchestrator = build_pipeline()

        from newsroom.core.errors import PipelineError

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            disable=json_output,
        ) as progress:
            task = progress.add_task(f"Running pipeline ({mode})...", total=None)
            try:
                result = await orchestrator.run(mode, force=force)
            except PipelineError as e:
                progress.stop()
                console.print(f"[red]{type(e).__name__}: {e}[/red]")
                raise typer.Exit(code=1)
            progress.update(task, description="Pipeline run complete!")

        report = result.to_dict()
        if json_output:
            console.print_json(json.dumps(report))
        else:
            print_run(report)

    asyncio.run(_run())


@app.command()
def status(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """Show the latest run and today's article stats."""
    async def _status():
        await init_services()
        ledger, _, orchestrator = build_pipeline()

        from newsroom.database import async_session
        from newsroom.services.pipeline import PipelineScheduler

        scheduler = PipelineScheduler(orchestrator, async_session, ledger)
        data = {"latest_run": ledger.latest_run(), "scheduler": await scheduler.get_status()}

        if json_output:
            console.print_json(json.dumps(data, default=str))
            return

        console.print(Panel("[bold cyan]NEWSROOM PIPELINE[/bold cyan]"))
        if data["latest_run"]:
            print_run(data["latest_run"])
        else:
            console.print("[dim]No runs recorded yet[/dim]")

        stats = data["scheduler"]["today_stats"]
        console.print(
            f"\n[bold]Today:[/bold] collected={stats['collected']}, "
            f"generated={stats['generated']}, published={stats['published']}"
        )

    asyncio.run(_status())


@app.command()
def collect(
    sources: Optional[str] = typer.Option(None, "--sources", "-s", help="Comma-separated source ids"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Max entries per source"),
    list_sources: bool = typer.Option(False, "--list", help="List configured sources"),
):
    """Collect feeds now."""
    async def _collect():
        from newsroom.services.collectors import FEED_SOURCES

        if list_sources:
            table = Table(title="Feed Sources")
            table.add_column("Id", style="cyan")
            table.add_column("Name")
            table.add_column("Category", style="dim")
            for source in FEED_SOURCES:
                table.add_row(source.source_id, source.name, source.category_hint)
            console.print(table)
            return

        await init_services()
        _, gateway, _ = build_pipeline()
        source_ids = [s.strip() for s in sources.split(",")] if sources else None
        report = await gateway.collect(sources=source_ids, limit=limit)

        console.print(f"\n[green]Collected {report['collected']} new items[/green]")
        for source_id, result in report["by_source"].items():
            icon = "[red]✗[/red]" if result["errors"] else "[green]✓[/green]"
            console.print(f"  {icon} {source_id}: {result['collected']} new, {result['duplicates']} duplicates")
            for error in result["errors"]:
                console.print(f"      [dim]{error}[/dim]")

    asyncio.run(_collect())


@app.command()
def score():
    """Score unscored raw items."""
    async def _score():
        await init_services()
        _, gateway, _ = build_pipeline()
        report = await gateway.score()
        console.print(
            f"[green]Scored {report['processed']} items[/green], "
            f"{report['qualified']} qualified ({report['qualification_rate']:.0%})"
        )

    asyncio.run(_score())


@app.command()
def validate(
    path: Path = typer.Argument(..., exists=True, readable=True, help="File with article text"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
):
    """Validate article text without touching the database."""
    from newsroom.core.errors import InvalidInput
    from newsroom.services.processing import ContentValidator

    try:
        result = ContentValidator().validate(path.read_text(encoding="utf-8"), category, title)
    except InvalidInput as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    color = "green" if result.approved else "yellow"
    console.print(f"[{color}]confidence={result.confidence:.2f} approved={result.approved}[/{color}]")
    for name, ok in result.checks.items():
        console.print(f"  {'[green]✓[/green]' if ok else '[red]✗[/red]'} {name}")
    for note in result.notes:
        console.print(f"  [dim]{note}[/dim]")


@app.command()
def publish(
    content_id: str = typer.Argument(..., help="Article id"),
    segment: Optional[str] = typer.Option(None, "--segment", "-s", help="Target neighborhood"),
):
    """Publish a validated article."""
    async def _publish():
        await init_services()
        _, gateway, _ = build_pipeline()

        from newsroom.core.errors import PipelineError

        try:
            record = await gateway.publish(content_id, auto_publish=False, segment=segment)
        except PipelineError as e:
            console.print(f"[red]{type(e).__name__}: {e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Published to {', '.join(record['segments'])}[/green]")

    asyncio.run(_publish())


@app.command()
def daily(force: bool = typer.Option(False, "--force", "-f", help="Ignore the run lease")):
    """Run the scheduler's daily pass once."""
    async def _daily():
        await init_services()
        ledger, _, orchestrator = build_pipeline()

        from newsroom.database import async_session
        from newsroom.services.pipeline import PipelineScheduler

        scheduler = PipelineScheduler(orchestrator, async_session, ledger)
        summary = await scheduler.run_daily(force=force)
        if "pipeline_run_id" in summary["pipeline"]:
            print_run(summary["pipeline"])
        else:
            console.print(f"[red]Pipeline: {summary['pipeline'].get('error')}[/red]")
        console.print(f"Backfill: {summary['backfill']}")
        console.print(f"Newsletter: {summary['newsletter']}")
        console.print(f"Cleanup: {summary['cleanup']}")

    asyncio.run(_daily())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port", "-p"),
    reload: bool = typer.Option(False, "--reload"),
):
    """Start the API server."""
    import uvicorn
    uvicorn.run("newsroom.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
