"""Secret store for the model gateway credential.

Secrets are kept in the ``secrets`` table of the local database, keyed by
(service, account). Values are trimmed on write; writing a blank value deletes
the entry.
"""

from __future__ import annotations

import sqlite3

DEFAULT_SERVICE = "screenlens"
API_KEY_ACCOUNT = "model_service_api_key"


class SecretStore:
    """Read/write access to stored credentials for one *service*."""

    def __init__(self, conn: sqlite3.Connection, service: str = DEFAULT_SERVICE) -> None:
        self._conn = conn
        self._service = service

    def read(self, account: str = API_KEY_ACCOUNT) -> str | None:
        """Return the stored secret for *account*, or None if absent."""
        row = self._conn.execute(
            "SELECT value FROM secrets WHERE service = ? AND account = ?",
            (self._service, account),
        ).fetchone()
        return row["value"] if row else None

    def upsert(self, value: str, account: str = API_KEY_ACCOUNT) -> None:
        """Store *value* for *account*. A blank value deletes the entry."""
        trimmed = value.strip()
        if not trimmed:
            self.delete(account)
            return
        self._conn.execute(
            """
            INSERT INTO secrets (service, account, value, updated_at)
            VALUES (?, ?, ?, datetime('now'))
            ON CONFLICT(service, account) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (self._service, account, trimmed),
        )
        self._conn.commit()

    def delete(self, account: str = API_KEY_ACCOUNT) -> None:
        """Remove the secret for *account*. No error if it does not exist."""
        self._conn.execute(
            "DELETE FROM secrets WHERE service = ? AND account = ?",
            (self._service, account),
        )
        self._conn.commit()
