"""Shared CLI plumbing: console, config loading, database opening."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from screenlens.cli.errors import err_config
from screenlens.config import ConfigError, ScreenlensConfig, load_config
from screenlens.db.schema import open_database

console = Console()
err_console = Console(stderr=True)

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the screenlens database (default: storage.db_path)."),
]


def configure_logging(verbose: bool) -> None:
    """Route screenlens logging through rich (DEBUG with --verbose, else WARNING)."""
    handler = RichHandler(console=err_console, show_path=False, markup=False)
    root = logging.getLogger("screenlens")
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


def load_settings() -> ScreenlensConfig:
    """load_config() with config errors turned into a clean exit."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db_path(db: Path | None, cfg: ScreenlensConfig) -> Path:
    return db if db is not None else cfg.storage.db_path


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (creating if needed) the database at *db_path* with the schema applied."""
    try:
        return open_database(db_path)
    except (sqlite3.Error, OSError) as exc:
        console.print(f"[red]Error:[/] Cannot open database '{db_path}': {exc}")
        raise typer.Exit(1)
