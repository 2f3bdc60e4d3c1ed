"""Command-line interface for teacher scoring."""

import asyncio
import logging
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from database import (
    DatabaseConnectionError,
    MetricSource,
    NeutralEngagementSource,
    PostgresMetricSource,
    PostgresScoreStore,
    ScoreRecordStore,
    close_database_pool,
    get_database_pool,
)
from models import PeriodType
from orchestration import BatchOrchestrator
from scoring import leaderboard as build_leaderboard
from teacher_scoring.config import Settings
from teacher_scoring.errors import ScoringError

app = typer.Typer(
    name="teacher-scoring",
    help="Teacher Scoring - per-period instructor performance scores and rankings",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    "saved": "green",
    "baseline": "yellow",
    "skipped": "yellow",
    "failed": "red",
    "cancelled": "dim",
}


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


async def _build_backends(settings: Settings) -> Tuple[MetricSource, ScoreRecordStore]:
    """PostgreSQL metric source and score store sharing one pool."""
    pool = await get_database_pool(settings.database)
    store = PostgresScoreStore(pool)
    await store.ensure_schema()
    return PostgresMetricSource(pool), store


async def _with_orchestrator(settings: Settings, action):
    try:
        metric_source, store = await _build_backends(settings)
        orchestrator = BatchOrchestrator(
            metric_source,
            store,
            engagement_source=NeutralEngagementSource(),
            config=settings.scoring,
        )
        return await action(orchestrator)
    finally:
        await close_database_pool()


def _load_settings() -> Settings:
    settings = Settings.load()
    setup_logging("DEBUG" if settings.app.debug else settings.app.log_level)
    return settings


@app.command()
def version():
    """Show version information."""
    from teacher_scoring import __version__

    console.print(Panel.fit(
        f"[bold blue]Teacher Scoring[/bold blue]\n"
        f"Version: [green]{__version__}[/green]",
        title="Version Info"
    ))


@app.command()
def generate(
    teacher_id: str = typer.Argument(..., help="Teacher to score"),
    period: PeriodType = typer.Option(PeriodType.MONTHLY, "--period", "-p", help="Period type"),
    actor: str = typer.Option("system", "--actor", help="Who is generating the score"),
):
    """Generate, save and rank one teacher's score for the current period."""
    settings = _load_settings()

    try:
        record = asyncio.run(_with_orchestrator(
            settings, lambda o: o.generate_one(teacher_id, period, actor=actor)
        ))
    except (ScoringError, DatabaseConnectionError) as e:
        console.print(f"[red]❌ {type(e).__name__}: {e}[/red]")
        raise typer.Exit(code=1)

    ranking = record.analytics.ranking
    console.print(Panel.fit(
        f"[bold]{record.teacher_id}[/bold]  {record.score_id}\n"
        f"Overall: [green]{record.overall_score}[/green] ({record.score_grade.value}, {record.score_category})\n"
        f"Change: {record.score_change:+d}  Target: {record.goals.target_score}\n"
        f"Rank: {ranking.overall_rank}/{ranking.total_teachers}  Percentile: {ranking.percentile}",
        title=f"{period.value.title()} score"
    ))


@app.command("generate-all")
def generate_all(
    period: PeriodType = typer.Option(PeriodType.MONTHLY, "--period", "-p", help="Period type"),
    teacher_ids: Optional[List[str]] = typer.Option(
        None, "--teacher-id", "-t", help="Restrict the batch to these teachers (repeatable)"
    ),
):
    """Generate scores for every active teacher, then rank the cohort."""
    settings = _load_settings()

    try:
        report = asyncio.run(_with_orchestrator(
            settings, lambda o: o.generate_all(period, teacher_ids=teacher_ids or None)
        ))
    except (ScoringError, DatabaseConnectionError) as e:
        console.print(f"[red]❌ {type(e).__name__}: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"{period.value.title()} batch {report.period_start:%Y-%m-%d} - {report.period_end:%Y-%m-%d}")
    table.add_column("Teacher")
    table.add_column("Status")
    table.add_column("Score ID")
    table.add_column("Error")
    for outcome in report.outcomes:
        style = STATUS_STYLES.get(outcome.status, "white")
        table.add_row(
            outcome.teacher_id,
            f"[{style}]{outcome.status}[/{style}]",
            outcome.score_id or "",
            outcome.error or ""
        )
    console.print(table)

    counts = ", ".join(f"{status}: {count}" for status, count in sorted(report.status_counts.items()))
    console.print(f"Ranked {report.ranked_count} teachers ({counts}) in {report.execution_time_ms / 1000:.1f}s")

    if report.aborted:
        console.print("[red]❌ Batch aborted: score store unavailable[/red]")
        raise typer.Exit(code=1)


@app.command()
def leaderboard(
    period: PeriodType = typer.Option(PeriodType.MONTHLY, "--period", "-p", help="Period type"),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of teachers to show"),
):
    """Show the top teachers for a period type."""
    settings = _load_settings()

    try:
        records = asyncio.run(_with_orchestrator(
            settings, lambda o: build_leaderboard(o.store, period, limit=limit)
        ))
    except (ScoringError, DatabaseConnectionError) as e:
        console.print(f"[red]❌ {type(e).__name__}: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"{period.value.title()} leaderboard")
    table.add_column("#", justify="right")
    table.add_column("Teacher")
    table.add_column("Score", justify="right")
    table.add_column("Grade")
    table.add_column("Percentile", justify="right")
    for position, record in enumerate(records, start=1):
        table.add_row(
            str(position),
            record.teacher_id,
            str(record.overall_score),
            record.score_grade.value,
            str(record.analytics.ranking.percentile)
        )
    console.print(table)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
