"""Database schema initialization."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from screenlens.db.connection import Database
from screenlens.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open *db_path*, apply pending migrations and return the connection."""
    conn = Database(db_path).connect()
    initialize(conn)
    return conn
