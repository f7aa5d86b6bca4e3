"""screenlens user-facing error messages.

Every error shown to the user states what went wrong and what to do next.
Helpers return rich markup for the console:

    from screenlens.cli.errors import err_no_api_key
    console.print(err_no_api_key())
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key() -> str:
    """No credential in the secret store and no static fallback."""
    return (
        "[red]Error:[/] No API key configured for the model service.\n"
        "  Run:  screenlens key set\n"
        "  or:   export DASHSCOPE_API_KEY=sk-..."
    )


def err_image_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] Image file not found: '{path}'\n"
        "  Pass the path of a PNG or JPEG screenshot."
    )


def err_record_not_found(record_id: str) -> str:
    """History record id unknown."""
    return (
        f"[yellow]Record not found:[/] '{record_id}' is not in the history.\n"
        "  Run:  screenlens history list  to see stored analyses."
    )


def err_config(detail: str) -> str:
    """Config file invalid or contains forbidden keys."""
    return f"[red]Error:[/] {detail}"


def err_persistence(detail: str) -> str:
    """History could not be written; the analysis itself is unaffected."""
    return (
        f"[yellow]Warning:[/] History could not be saved: {detail}\n"
        "  Check that the database path is writable (storage.db_path / --db)."
    )


def warn_history_disabled() -> str:
    return (
        "[yellow]⚠[/] History is disabled, this analysis was not recorded.\n"
        "  Enable it with  history: {enabled: true}  in screenlens.yaml."
    )
