"""Key-value repository: the durable store behind HistoryRepository.

Values are opaque text blobs under well-known keys. Only
screenlens.history.store reads or writes the history key.
"""

from __future__ import annotations

import sqlite3


class Repository:
    """Data access layer for the ``kv_store`` table.

    Wraps an open sqlite3.Connection. The connection is owned by the caller and
    must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see screenlens.db.schema.initialize).
        """
        self._conn = conn

    def get_value(self, key: str) -> str | None:
        """Return the value stored under *key*, or None if absent."""
        row = self._conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_value(self, key: str, value: str) -> None:
        """Insert or replace the value stored under *key*."""
        self._conn.execute(
            """
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value),
        )
        self._conn.commit()
