"""screenlens CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from screenlens.cli.analyze import analyze_cmd, ask_cmd, caller_cmd, chat_cmd
from screenlens.cli.config_cmd import config_app
from screenlens.cli.context import configure_logging
from screenlens.cli.history import history_app, search_cmd
from screenlens.cli.key import key_app
from screenlens.cli.tag import tag_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("screenlens")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"screenlens {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="screenlens",
    help=(
        "screenlens — screenshot analysis assistant.\n\n"
        "  screenlens analyze shot.png   Translate, summarise and advise on a screenshot.\n"
        "  screenlens history list       Browse past analyses."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """screenlens — screenshot analysis assistant."""
    configure_logging(verbose)


app.command("analyze")(analyze_cmd)
app.command("ask")(ask_cmd)
app.command("caller")(caller_cmd)
app.command("chat")(chat_cmd)
app.command("search")(search_cmd)
app.command("tag")(tag_cmd)
app.add_typer(history_app, name="history")
app.add_typer(key_app, name="key")
app.add_typer(config_app, name="config")


@app.command("version")
def version_cmd() -> None:
    """Show the installed screenlens version."""
    typer.echo(f"screenlens {_installed_version()}")


if __name__ == "__main__":
    app()
