"""screenlens history commands.

Commands:
  screenlens history list            — stored analyses, newest first
  screenlens history show <id>       — full summary of one analysis
  screenlens history delete <id>     — remove one analysis
  screenlens history clear [--yes]   — remove every analysis
  screenlens search <query>          — substring search over summaries and instructions
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from screenlens.assistant import build_assistant
from screenlens.cli.context import DbOption, console, load_settings, open_db, resolve_db_path
from screenlens.cli.errors import err_record_not_found
from screenlens.db.models import AnalysisRecord
from screenlens.db.repository import Repository
from screenlens.history.store import HistoryRepository
from screenlens.text import auto_cjk_spacing

history_app = typer.Typer(
    name="history",
    help="Manage stored analyses (list, show, delete, clear).",
    add_completion=False,
)

_PREVIEW_CHARS = 60


@history_app.command("list")
def history_list_cmd(db: DbOption = None) -> None:
    """List stored analyses, newest first."""
    records = _run(db, lambda history: history.load())
    if not records:
        console.print("[yellow]No analyses in history.[/]")
        raise typer.Exit(0)
    _print_records(records, title="History")


@history_app.command("show")
def history_show_cmd(
    record_id: Annotated[str, typer.Argument(help="Record id (see `screenlens history list`).")],
    db: DbOption = None,
) -> None:
    """Show the full summary of one analysis."""
    records = _run(db, lambda history: history.load())
    record = next((r for r in records if r.id == record_id), None)
    if record is None:
        console.print(err_record_not_found(record_id))
        raise typer.Exit(1)
    subtitle = record.instruction or "default analysis"
    console.print(
        Panel(
            Markdown(auto_cjk_spacing(record.summary)),
            title=f"[bold]{_format_date(record)}[/]",
            subtitle=subtitle,
        )
    )


@history_app.command("delete")
def history_delete_cmd(
    record_id: Annotated[str, typer.Argument(help="Record id to delete.")],
    db: DbOption = None,
) -> None:
    """Delete one analysis."""

    async def _delete(history: HistoryRepository) -> bool:
        before = await history.load()
        after = await history.delete(record_id)
        return len(after) < len(before)

    if not _run(db, _delete):
        console.print(err_record_not_found(record_id))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Deleted {record_id}")


@history_app.command("clear")
def history_clear_cmd(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOption = None,
) -> None:
    """Delete every stored analysis."""
    if not yes and not typer.confirm("Delete all stored analyses?", default=False):
        console.print("  [dim]Cancelled.[/]")
        raise typer.Exit(0)
    _run(db, lambda history: history.clear())
    console.print("[green]✓[/] History cleared")


def search_cmd(
    query: Annotated[str, typer.Argument(help="Text to look for (at least 2 characters).")],
    db: DbOption = None,
) -> None:
    """Search stored analyses by summary and instruction."""
    cfg = load_settings()
    if len(query.strip()) < cfg.search.min_query_length:
        console.print(
            f"[yellow]Query too short:[/] enter at least {cfg.search.min_query_length} characters."
        )
        raise typer.Exit(1)

    async def _search() -> list[AnalysisRecord]:
        conn = open_db(resolve_db_path(db, cfg))
        assistant = build_assistant(cfg, conn)
        try:
            return await assistant.search(query)
        finally:
            await assistant.close()
            conn.close()

    results = asyncio.run(_search())
    if not results:
        console.print(f"[yellow]No analyses match[/] '{query}'.")
        raise typer.Exit(0)
    _print_records(results, title=f"Matches for '{query}'")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(db: Path | None, action):
    """Run *action(history)* against the configured database and close it."""
    cfg = load_settings()
    conn = open_db(resolve_db_path(db, cfg))

    async def _body():
        history = HistoryRepository(Repository(conn), cfg.history)
        try:
            return await action(history)
        finally:
            await history.close()

    try:
        return asyncio.run(_body())
    finally:
        conn.close()


def _print_records(records: list[AnalysisRecord], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim", overflow="fold")
    table.add_column("Date", no_wrap=True)
    table.add_column("Instruction")
    table.add_column("Summary")
    for record in records:
        table.add_row(
            record.id,
            _format_date(record),
            record.instruction or "[dim]default[/]",
            _preview(record.summary),
        )
    console.print(table)
    console.print(f"\n  {len(records)} record(s)")


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= _PREVIEW_CHARS else flat[: _PREVIEW_CHARS - 1] + "…"


def _format_date(record: AnalysisRecord) -> str:
    return record.date.astimezone().strftime("%Y-%m-%d %H:%M")
