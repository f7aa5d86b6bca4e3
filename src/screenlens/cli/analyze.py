"""screenlens analysis commands: analyze, ask, caller, chat.

Usage:
  screenlens analyze shot.png [--instruction TEXT] [--chat]
  screenlens ask "这段报错是什么意思？"
  screenlens caller incoming.png [--note TEXT]
  screenlens chat <record-id>

Failures of the model service are shown in place of the summary (the exit
code is then 1) and are never recorded in history.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from screenlens.assistant import AnalysisOutcome, Assistant, build_assistant
from screenlens.chat.session import ChatMessage, ConversationSession
from screenlens.cli.context import DbOption, console, load_settings, open_db, resolve_db_path
from screenlens.cli.errors import (
    err_image_not_found,
    err_no_api_key,
    err_persistence,
    err_record_not_found,
    warn_history_disabled,
)
from screenlens.config import ScreenlensConfig
from screenlens.errors import ConfigurationError, MissingCredentialError, PersistenceError
from screenlens.text import auto_cjk_spacing

_EXIT_WORDS = {"exit", "quit", "q", "退出"}


def analyze_cmd(
    image: Annotated[Path, typer.Argument(help="Screenshot to analyse (PNG, JPEG, ...).")],
    instruction: Annotated[
        str,
        typer.Option("--instruction", "-i", help="What to do with the screenshot (default: translate + summarise)."),
    ] = "",
    chat: Annotated[
        bool,
        typer.Option("--chat", help="Continue with an interactive follow-up conversation."),
    ] = False,
    db: DbOption = None,
) -> None:
    """Analyse a screenshot and record the result in history."""
    data = _read_image(image)
    cfg = load_settings()
    ok = asyncio.run(_analyze(cfg, resolve_db_path(db, cfg), data, instruction, chat=chat))
    if not ok:
        raise typer.Exit(1)


def ask_cmd(
    text: Annotated[str, typer.Argument(help="Question or instruction (no screenshot).")],
    chat: Annotated[
        bool,
        typer.Option("--chat", help="Continue with an interactive follow-up conversation."),
    ] = False,
    db: DbOption = None,
) -> None:
    """Text-only analysis."""
    cfg = load_settings()
    ok = asyncio.run(_analyze(cfg, resolve_db_path(db, cfg), None, text, chat=chat))
    if not ok:
        raise typer.Exit(1)


def caller_cmd(
    image: Annotated[Path, typer.Argument(help="Screenshot of the incoming-call screen.")],
    note: Annotated[
        str,
        typer.Option("--note", "-n", help="Extra context for the lookup."),
    ] = "",
    db: DbOption = None,
) -> None:
    """Identify the caller on an incoming-call screenshot."""
    data = _read_image(image)
    cfg = load_settings()
    ok = asyncio.run(_analyze(cfg, resolve_db_path(db, cfg), data, note, caller=True))
    if not ok:
        raise typer.Exit(1)


def chat_cmd(
    record_id: Annotated[str, typer.Argument(help="History record id (see `screenlens history list`).")],
    db: DbOption = None,
) -> None:
    """Continue a conversation about a stored analysis."""
    cfg = load_settings()
    ok = asyncio.run(_chat_on_record(cfg, resolve_db_path(db, cfg), record_id))
    if not ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Async bodies
# ---------------------------------------------------------------------------


async def _analyze(
    cfg: ScreenlensConfig,
    db_path: Path,
    image: bytes | None,
    instruction: str,
    *,
    chat: bool = False,
    caller: bool = False,
) -> bool:
    conn = open_db(db_path)
    persist_errors: list[PersistenceError] = []
    assistant = build_assistant(cfg, conn, on_persist_error=persist_errors.append)
    try:
        try:
            assistant.gateway.resolve_config()
        except ConfigurationError as exc:
            if isinstance(exc, MissingCredentialError):
                console.print(err_no_api_key())
            else:
                console.print(f"[red]Error:[/] {exc}")
            return False

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task("Analysing…", total=None)
            if caller:
                outcome = await assistant.lookup_caller(image, instruction)
            else:
                outcome = await assistant.run_analysis(image, instruction)

        if outcome is None:
            return False
        _print_outcome(outcome)
        if not outcome.succeeded:
            return False
        if not cfg.history.enabled:
            console.print(warn_history_disabled())

        await _show_tags(assistant, outcome.phone_numbers)

        if chat:
            await _chat_loop(assistant, assistant.start_conversation(outcome.summary))
        return True
    finally:
        await assistant.close()
        conn.close()
        for exc in persist_errors:
            console.print(err_persistence(str(exc)))


async def _chat_on_record(cfg: ScreenlensConfig, db_path: Path, record_id: str) -> bool:
    conn = open_db(db_path)
    assistant = build_assistant(cfg, conn)
    try:
        records = await assistant.history.load()
        record = next((r for r in records if r.id == record_id), None)
        if record is None:
            console.print(err_record_not_found(record_id))
            return False
        console.print(Panel(Markdown(auto_cjk_spacing(record.summary)), title="[bold]Summary[/]"))
        if cfg.warmup.enabled:
            assistant.warm_up(cfg.warmup.delay)
        await _chat_loop(assistant, assistant.start_conversation(record.summary))
        return True
    finally:
        await assistant.close()
        conn.close()


async def _chat_loop(assistant: Assistant, session: ConversationSession) -> None:
    """Read user turns until EOF or an exit word; print each reply."""
    console.print("[dim]Follow-up chat. Type 'exit' to leave.[/]")
    while True:
        try:
            text = await asyncio.to_thread(console.input, "[bold cyan]You:[/] ")
        except (EOFError, KeyboardInterrupt):
            break
        if text.strip().lower() in _EXIT_WORDS:
            break
        reply = await assistant.send_follow_up(session, text)
        if reply is not None:
            _print_message(reply)


async def _show_tags(assistant: Assistant, numbers: list[str]) -> None:
    if not numbers:
        return
    console.print("\n[bold]Detected phone numbers[/]")
    tags = await asyncio.gather(*(assistant.load_tag(n) for n in numbers))
    for number, tag in zip(numbers, tags):
        detail = tag.describe() if tag is not None else "[dim]no tag information[/]"
        console.print(f"  {number}  {detail}")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _print_outcome(outcome: AnalysisOutcome) -> None:
    if outcome.succeeded:
        console.print(Panel(Markdown(auto_cjk_spacing(outcome.summary)), title="[bold]Analysis[/]"))
    else:
        console.print(Panel(outcome.summary, title="[bold red]Analysis failed[/]", border_style="red"))


def _print_message(message: ChatMessage) -> None:
    console.print(f"[bold green]Assistant:[/] {auto_cjk_spacing(message.text)}")


def _read_image(path: Path) -> bytes:
    if not path.is_file():
        console.print(err_image_not_found(str(path)))
        raise typer.Exit(1)
    return path.read_bytes()
