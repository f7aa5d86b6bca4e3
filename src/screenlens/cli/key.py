"""screenlens key commands: manage the model service credential.

The credential is kept in the local secret store. It takes precedence over
DASHSCOPE_API_KEY, which is used only when nothing is stored.
"""

from __future__ import annotations

import os
from typing import Annotated

import typer

from screenlens.cli.context import DbOption, console, load_settings, open_db, resolve_db_path
from screenlens.db.secret_store import SecretStore
from screenlens.gateway.provider import STATIC_API_KEY_ENV

key_app = typer.Typer(
    name="key",
    help="Manage the model service API key (set, delete, status).",
    add_completion=False,
)


@key_app.command("set")
def key_set_cmd(
    value: Annotated[
        str | None,
        typer.Option("--value", help="API key (prompted for, hidden, when omitted)."),
    ] = None,
    db: DbOption = None,
) -> None:
    """Store the API key in the secret store."""
    if value is None:
        value = typer.prompt("API key", hide_input=True)
    if not value.strip():
        console.print("[red]Error:[/] The API key is empty.\n  Run:  screenlens key delete  to remove it.")
        raise typer.Exit(1)
    cfg = load_settings()
    conn = open_db(resolve_db_path(db, cfg))
    try:
        SecretStore(conn).upsert(value)
    finally:
        conn.close()
    console.print("[green]✓[/] API key saved")


@key_app.command("delete")
def key_delete_cmd(db: DbOption = None) -> None:
    """Remove the stored API key."""
    cfg = load_settings()
    conn = open_db(resolve_db_path(db, cfg))
    try:
        SecretStore(conn).delete()
    finally:
        conn.close()
    console.print("[green]✓[/] API key removed")


@key_app.command("status")
def key_status_cmd(db: DbOption = None) -> None:
    """Show where the API key will be taken from (never prints the key)."""
    cfg = load_settings()
    conn = open_db(resolve_db_path(db, cfg))
    try:
        stored = SecretStore(conn).read()
    finally:
        conn.close()

    if stored:
        console.print(f"API key: [green]stored[/] ({_mask(stored)})")
    elif os.environ.get(STATIC_API_KEY_ENV, "").strip():
        console.print(f"API key: [yellow]from {STATIC_API_KEY_ENV}[/]")
    else:
        console.print(
            "API key: [red]not configured[/]\n"
            "  Run:  screenlens key set"
        )
        raise typer.Exit(1)


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "****"
    return f"{secret[:3]}…{secret[-4:]}"
