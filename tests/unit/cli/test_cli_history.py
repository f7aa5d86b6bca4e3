"""Tests for screenlens history and search commands."""

from __future__ import annotations

import asyncio
from pathlib import Path

from typer.testing import CliRunner

from screenlens.cli.main import app
from screenlens.db.models import AnalysisRecord
from screenlens.db.repository import Repository
from screenlens.db.schema import open_database
from screenlens.history.store import HistoryRepository

runner = CliRunner()


def _seed(db_path: Path, *summaries: str) -> list[AnalysisRecord]:
    """Append *summaries* (oldest first) and return the stored collection."""

    async def _append():
        history = HistoryRepository(Repository(conn))
        records: list[AnalysisRecord] = []
        try:
            for summary in summaries:
                records = await history.append("", summary)
            return records
        finally:
            await history.close()

    conn = open_database(db_path)
    try:
        return asyncio.run(_append())
    finally:
        conn.close()


def test_history_list_empty(tmp_path):
    result = runner.invoke(app, ["history", "list", "--db", str(tmp_path / "s.db")])
    assert result.exit_code == 0
    assert "No analyses in history" in result.output


def test_history_list_counts_records(tmp_path):
    db = tmp_path / "s.db"
    _seed(db, "first", "second")
    result = runner.invoke(app, ["history", "list", "--db", str(db)])
    assert result.exit_code == 0
    assert "2 record(s)" in result.output


def test_history_show(tmp_path):
    db = tmp_path / "s.db"
    [record] = _seed(db, "Disk almost full")
    result = runner.invoke(app, ["history", "show", record.id, "--db", str(db)])
    assert result.exit_code == 0
    assert "Disk almost full" in result.output


def test_history_show_unknown(tmp_path):
    result = runner.invoke(app, ["history", "show", "missing", "--db", str(tmp_path / "s.db")])
    assert result.exit_code == 1
    assert "Record not found" in result.output


def test_history_delete(tmp_path):
    db = tmp_path / "s.db"
    newest, oldest = _seed(db, "old", "new")
    result = runner.invoke(app, ["history", "delete", newest.id, "--db", str(db)])
    assert result.exit_code == 0
    assert "Deleted" in result.output

    result = runner.invoke(app, ["history", "list", "--db", str(db)])
    assert "1 record(s)" in result.output


def test_history_delete_unknown(tmp_path):
    db = tmp_path / "s.db"
    _seed(db, "keep")
    result = runner.invoke(app, ["history", "delete", "missing", "--db", str(db)])
    assert result.exit_code == 1
    assert "Record not found" in result.output


def test_history_clear_requires_confirmation(tmp_path):
    db = tmp_path / "s.db"
    _seed(db, "keep")
    result = runner.invoke(app, ["history", "clear", "--db", str(db)], input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.output

    result = runner.invoke(app, ["history", "list", "--db", str(db)])
    assert "1 record(s)" in result.output


def test_history_clear_yes(tmp_path):
    db = tmp_path / "s.db"
    _seed(db, "a", "b")
    result = runner.invoke(app, ["history", "clear", "--yes", "--db", str(db)])
    assert result.exit_code == 0

    result = runner.invoke(app, ["history", "list", "--db", str(db)])
    assert "No analyses in history" in result.output


def test_search_finds_matches(tmp_path):
    db = tmp_path / "s.db"
    _seed(db, "Printer offline", "Sunny weather", "printer jammed")
    result = runner.invoke(app, ["search", "PRINTER", "--db", str(db)])
    assert result.exit_code == 0
    assert "2 record(s)" in result.output


def test_search_no_matches(tmp_path):
    db = tmp_path / "s.db"
    _seed(db, "Printer offline")
    result = runner.invoke(app, ["search", "router", "--db", str(db)])
    assert result.exit_code == 0
    assert "No analyses match" in result.output


def test_search_query_too_short(tmp_path):
    result = runner.invoke(app, ["search", " p ", "--db", str(tmp_path / "s.db")])
    assert result.exit_code == 1
    assert "Query too short" in result.output
