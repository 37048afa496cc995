"""CLI interface for checklist administration."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from checklist import __version__
from checklist.config import settings
from checklist.engine import ChecklistEngine
from checklist.errors import ChecklistError
from checklist.models import ChecklistItem, ChecklistType, Verdict
from checklist.scoring import assess
from checklist.services import ResultFilters

# Configure logging with Rich
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)]
)

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="checklist",
    help="Life-support checklist assessment administration"
)

console = Console()

T = TypeVar("T")

VERDICT_STYLES = {
    Verdict.PASS: "green",
    Verdict.FAIL: "red",
    Verdict.INCOMPLETE: "yellow",
}


def _build_engine() -> ChecklistEngine:
    return ChecklistEngine.from_settings(settings)


def _run(action: Callable[[ChecklistEngine], Awaitable[T]]) -> T:
    """Run an async action against a fresh engine and always release it."""

    async def runner() -> T:
        engine = _build_engine()
        try:
            return await action(engine)
        finally:
            await engine.stop()

    try:
        return asyncio.run(runner())
    except ChecklistError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc


def _styled_verdict(verdict: Verdict) -> str:
    style = VERDICT_STYLES.get(verdict, "white")
    return f"[{style}]{verdict.value}[/{style}]"


@app.command()
def seed(
    checklist_type: Optional[ChecklistType] = typer.Option(
        None,
        "--type",
        "-t",
        help="Seed only this checklist type"
    ),
    replace: bool = typer.Option(
        False,
        "--replace",
        help="Delete existing items of the type before seeding"
    )
):
    """
    Create the default checklist items.
    """
    kinds = [checklist_type] if checklist_type else list(ChecklistType)

    async def action(engine: ChecklistEngine) -> None:
        for kind in kinds:
            existing = await engine.store.select(engine.config.items_table, {"checklist_type": kind.value}, limit=1)
            if existing and not replace:
                console.print(f"  ⊘ {kind.value}: [yellow]already has items[/yellow]")
                continue
            created = await engine.items.seed_defaults(kind, replace=replace)
            console.print(f"  ✓ {kind.value}: [green]{len(created)} items[/green]")

    console.print("\n[bold blue]Seeding default checklists[/bold blue]\n")
    _run(action)


@app.command()
def items(
    checklist_type: ChecklistType = typer.Argument(
        ...,
        help="Checklist type"
    )
):
    """
    Show the items of a checklist grouped by section.
    """
    result = _run(lambda engine: engine.load_checklist(checklist_type, force=True))

    if not result.success:
        console.print(f"[red]Failed to load {checklist_type.value}: {result.error}[/red]")
        raise typer.Exit(1)

    if not result.items:
        console.print(f"[yellow]No items found for {checklist_type.value}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Section", style="cyan", width=18)
    table.add_column("Item", overflow="fold")
    table.add_column("Compulsory", justify="center", width=10)
    table.add_column("ID", style="dim", width=11)

    for item in result.items:
        table.add_row(
            str(item.order_index),
            item.section,
            item.item,
            "✓" if item.is_compulsory else "",
            (item.id or "-")[:8] + "...",
        )

    console.print(table)
    console.print(f"\n[dim]{len(result.items)} item(s)[/dim]\n")


@app.command()
def score(
    path: Path = typer.Argument(
        ...,
        help="JSON file with checklist_type, items and completed item ids",
        exists=True,
        dir_okay=False
    )
):
    """
    Score an assessment from a JSON file without touching the database.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        kind = ChecklistType(payload["checklist_type"])
        checklist_items = [ChecklistItem.model_validate(row) for row in payload.get("items", [])]
        completed = frozenset(str(item_id) for item_id in payload.get("completed", []))
    except (json.JSONDecodeError, KeyError, ValueError, ValidationError) as exc:
        console.print(f"[red]Invalid assessment file: {exc}[/red]")
        raise typer.Exit(1) from exc

    assessment = assess(checklist_items, completed, kind, quota=settings.quota_pass_threshold)
    verdict = assessment.verdict

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Section", style="cyan")
    table.add_column("Done", justify="right", width=6)
    table.add_column("Total", justify="right", width=6)
    table.add_column("Complete", justify="center", width=9)

    for section in assessment.section_results:
        done = sum(1 for entry in section.items if entry.completed)
        table.add_row(section.section, str(done), str(len(section.items)), "✓" if section.completed else "")

    console.print(table)
    console.print(
        f"\n  Policy    : [cyan]{assessment.policy.value}[/cyan]"
        f"\n  Completed : {verdict.completed_count}/{verdict.total_count} ({verdict.percentage:.0f}%)"
        f"\n  Verdict   : {_styled_verdict(verdict.verdict)}\n"
    )


@app.command()
def results(
    participant: Optional[str] = typer.Option(
        None,
        "--participant",
        "-p",
        help="Filter by participant id"
    ),
    checklist_type: Optional[ChecklistType] = typer.Option(
        None,
        "--type",
        "-t",
        help="Filter by checklist type"
    ),
    status: Optional[Verdict] = typer.Option(
        None,
        "--status",
        help="Filter by verdict"
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Number of results to show"
    ),
    offset: int = typer.Option(
        0,
        "--offset",
        help="Pagination offset"
    )
):
    """
    List submitted assessment results.
    """
    console.print("\n[bold blue]Checklist Results[/bold blue]\n")

    filters = ResultFilters(
        participant_id=participant,
        checklist_type=checklist_type,
        status=status,
        limit=limit,
        offset=offset,
    )
    rows = _run(lambda engine: engine.results.list_results(filters))

    if not rows:
        console.print("[yellow]No results found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", width=11)
    table.add_column("Participant", style="cyan", no_wrap=False)
    table.add_column("Checklist", width=15)
    table.add_column("Score", justify="right", width=7)
    table.add_column("Status", justify="center", width=11)
    table.add_column("Retake", justify="center", width=6)
    table.add_column("Submitted", width=19)

    for row in rows:
        submitted = row.submitted_at.strftime("%Y-%m-%d %H:%M") if row.submitted_at else "-"
        table.add_row(
            (row.id or "-")[:8] + "...",
            row.participant_name,
            row.checklist_type.value,
            f"{row.completion_percentage:.0f}%",
            _styled_verdict(row.status),
            str(row.retake_count) if row.is_retake else "-",
            submitted,
        )

    console.print(table)
    console.print(f"\n[dim]Showing {len(rows)} result(s) (offset: {offset})[/dim]\n")


@app.command()
def stats(
    checklist_type: Optional[ChecklistType] = typer.Option(
        None,
        "--type",
        "-t",
        help="Restrict to one checklist type"
    )
):
    """Show pass/fail statistics per checklist type."""
    rows = _run(lambda engine: engine.results.stats(checklist_type))

    if not rows:
        console.print("[yellow]No results recorded[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Checklist", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Pass", justify="right", style="green")
    table.add_column("Fail", justify="right", style="red")
    table.add_column("Incomplete", justify="right", style="yellow")
    table.add_column("Avg %", justify="right")
    table.add_column("Pass rate", justify="right")

    for row in rows:
        table.add_row(
            row.checklist_type.value,
            str(row.total_assessments),
            str(row.pass_count),
            str(row.fail_count),
            str(row.incomplete_count),
            f"{row.avg_completion_percentage:.2f}",
            f"{row.pass_rate}%",
        )

    console.print(table)


@app.command("delete-result")
def delete_result(
    result_id: str = typer.Argument(
        ...,
        help="Result ID"
    ),
    deleted_by: str = typer.Option(
        ...,
        "--by",
        help="Who is deleting the result"
    ),
    reason: Optional[str] = typer.Option(
        None,
        "--reason",
        help="Why the result is being removed"
    )
):
    """Soft-delete a result (the record is kept with a tombstone)."""
    _run(lambda engine: engine.results.soft_delete(result_id, deleted_by, reason))
    console.print(f"[green]Result {result_id} deleted[/green]")


@app.command("normalize-compulsory")
def normalize_compulsory():
    """Mark CPR airway, breathing and circulation items as compulsory."""
    changed = _run(lambda engine: engine.items.normalize_compulsory_flags())
    console.print(f"Corrected [cyan]{changed}[/cyan] item(s)")


@app.command()
def watch():
    """Listen for remote changes and log every notification."""
    from checklist.worker import main as worker_main

    worker_main()


@app.command()
def version():
    """Show version information."""
    console.print(f"[cyan]checklist[/cyan] v{__version__}")


def main():
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error: {e}[/red]")
        logger.exception("Unhandled exception")
        sys.exit(1)


if __name__ == "__main__":
    main()
