"""screenlens config commands: show the effective configuration, create the global file."""

from __future__ import annotations

import typer
from rich.table import Table

from screenlens.cli.context import console, load_settings
from screenlens.config import ensure_global_config
from screenlens.errors import ConfigurationError
from screenlens.gateway.provider import normalize_base_url

config_app = typer.Typer(
    name="config",
    help="Show or initialise configuration.",
    add_completion=False,
)


@config_app.command("show")
def config_show_cmd() -> None:
    """Show the effective configuration (all layers merged)."""
    cfg = load_settings()
    table = Table(title="screenlens configuration", show_header=True, header_style="bold")
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    rows = [
        ("provider.base_url", cfg.provider.base_url or "(default)"),
        ("provider.text_model", cfg.provider.text_model or "(default)"),
        ("provider.vision_model", cfg.provider.vision_model or "(default)"),
        ("provider.timeout", f"{cfg.provider.timeout:g}s"),
        ("history.enabled", str(cfg.history.enabled).lower()),
        ("history.max_count", str(cfg.history.max_count)),
        ("search.debounce_ms", str(cfg.search.debounce_ms)),
        ("chat.display_limit", str(cfg.chat.display_limit)),
        ("warmup.delay", f"{cfg.warmup.delay:g}s"),
        ("image.jpeg_quality", f"{cfg.image.jpeg_quality:g}"),
        ("phone_tags.endpoint", cfg.phone_tags.endpoint),
        ("storage.db_path", str(cfg.storage.db_path)),
    ]
    for name, value in rows:
        table.add_row(name, value)
    console.print(table)

    try:
        endpoint = normalize_base_url(cfg.provider.base_url)
    except ConfigurationError as exc:
        console.print(f"\n[red]✗[/] {exc}")
        raise typer.Exit(1)
    console.print(f"\n  Requests go to {endpoint}/v1/chat/completions")


@config_app.command("init")
def config_init_cmd() -> None:
    """Create ~/.screenlens/config.yaml with defaults (kept if it exists)."""
    path = ensure_global_config()
    console.print(f"[green]✓[/] Global config: {path}")
