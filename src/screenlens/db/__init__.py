"""screenlens database layer."""

from screenlens.db.connection import Database
from screenlens.db.migrations import MIGRATIONS, run_migrations
from screenlens.db.repository import Repository
from screenlens.db.schema import initialize, open_database
from screenlens.db.secret_store import SecretStore

__all__ = [
    "Database",
    "initialize",
    "open_database",
    "run_migrations",
    "MIGRATIONS",
    "Repository",
    "SecretStore",
]
