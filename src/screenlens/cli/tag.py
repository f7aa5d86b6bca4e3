"""screenlens tag command: phone-number tag lookup."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from screenlens.cli.context import console, load_settings
from screenlens.phone.tags import PhoneTagLookupClient


def tag_cmd(
    number: Annotated[str, typer.Argument(help="Phone number to look up.")],
) -> None:
    """Look up tagging information for a phone number (best-effort)."""
    if not number.strip():
        console.print("[red]Error:[/] Phone number is empty.")
        raise typer.Exit(1)
    cfg = load_settings()
    tag = asyncio.run(PhoneTagLookupClient(cfg.phone_tags).query_tag(number))
    if tag is None:
        console.print(f"[yellow]No tag information[/] for {number.strip()}.")
        raise typer.Exit(0)
    console.print(f"{number.strip()}  {tag.describe()}")
