"""Analysis history: bounded persistence and incremental search."""

from screenlens.history.search import (
    SearchIndex,
    SearchIndexEntry,
    SearchSession,
    SearchState,
    match_entries,
)
from screenlens.history.store import STORAGE_KEY, HistoryRepository

__all__ = [
    "HistoryRepository",
    "STORAGE_KEY",
    "SearchIndex",
    "SearchIndexEntry",
    "SearchSession",
    "SearchState",
    "match_entries",
]
