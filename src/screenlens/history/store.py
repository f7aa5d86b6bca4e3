"""Bounded, durably persisted analysis history.

The collection is stored as one JSON array under STORAGE_KEY in the key-value
repository, newest record first. Every mutation is a read-modify-write:

  - mutations are linearized by an asyncio.Lock (single logical writer);
  - all durable reads and writes run on one single-worker executor,
    so a read always observes every write scheduled before it;
  - writes are scheduled, not awaited: callers get the new collection at once;
  - a failed write is retried, then logged and reported to on_persist_error;
  - a failed read aborts the mutation: it is reported and nothing is written.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from screenlens.config import DEFAULT_HISTORY_LIMIT, HistoryCfg
from screenlens.db.models import AnalysisRecord
from screenlens.db.repository import Repository
from screenlens.errors import PersistenceError

logger = logging.getLogger(__name__)

STORAGE_KEY = "analysisHistory"

HistoryListener = Callable[[list[AnalysisRecord]], None]
PersistErrorHandler = Callable[[PersistenceError], None]


def encode_history(records: Iterable[AnalysisRecord]) -> str:
    """Serialize *records* to the persisted JSON array layout."""
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False)


def decode_history(raw: str | None) -> list[AnalysisRecord]:
    """Parse the persisted layout. Missing or corrupt data yields an empty list."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise TypeError(f"expected a JSON array, got {type(data).__name__}")
        return [AnalysisRecord.from_dict(item) for item in data]
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("Discarding unreadable history data: %s", exc)
        return []


class HistoryRepository:
    """Single source of truth for the persisted analysis history.

    Args:
        repo: Key-value repository holding the serialized collection. Its
            connection is used only from the I/O worker thread.
        config: History settings, read on every append so live changes apply.
        on_persist_error: Called on the event loop when a durable write fails
            after all attempts.
        write_attempts: Total attempts per durable write (>= 1).
    """

    def __init__(
        self,
        repo: Repository,
        config: HistoryCfg | None = None,
        *,
        on_persist_error: PersistErrorHandler | None = None,
        write_attempts: int = 2,
    ) -> None:
        self._repo = repo
        self._config = config if config is not None else HistoryCfg()
        self._on_persist_error = on_persist_error
        self._write_attempts = max(1, write_attempts)
        self._lock = asyncio.Lock()
        self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix="screenlens-history")
        self._pending: set[asyncio.Future[None]] = set()
        self._listeners: list[HistoryListener] = []
        self._last_known: list[AnalysisRecord] = []

    @property
    def config(self) -> HistoryCfg:
        return self._config

    @property
    def limit(self) -> int:
        """Current retention limit (non-positive values fall back to the default)."""
        configured = self._config.max_count
        return configured if configured > 0 else DEFAULT_HISTORY_LIMIT

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self) -> list[AnalysisRecord]:
        """Return the persisted collection (empty if absent or unreadable)."""
        try:
            return await self._read()
        except PersistenceError as exc:
            logger.error("%s", exc)
            self._report(exc)
            return []

    async def append(self, instruction: str, summary: str) -> list[AnalysisRecord]:
        """Record a new analysis at the head of the collection.

        No-op (returns the current collection, no write) when history is
        disabled. Otherwise the tail beyond the retention limit is evicted.
        A failed read aborts the mutation and returns the last known collection.
        """
        async with self._lock:
            current = await self._read_for_update()
            if current is None:
                return list(self._last_known)
            if not self._config.enabled:
                return current
            record = AnalysisRecord.create(instruction, summary)
            updated = [record, *current][: self.limit]
            self._schedule_write(updated)
        self._notify(updated)
        return updated

    async def delete(self, record_id: str) -> list[AnalysisRecord]:
        """Remove the record with *record_id*; unknown ids leave history unchanged."""
        async with self._lock:
            current = await self._read_for_update()
            if current is None:
                return list(self._last_known)
            updated = [r for r in current if r.id != record_id]
            if len(updated) == len(current):
                return current
            self._schedule_write(updated)
        self._notify(updated)
        return updated

    async def clear(self) -> list[AnalysisRecord]:
        """Remove every record."""
        async with self._lock:
            self._schedule_write([])
        self._notify([])
        return []

    async def flush(self) -> None:
        """Wait for every scheduled durable write to finish (successfully or not)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Flush pending writes and stop the I/O worker."""
        await self.flush()
        self._io.shutdown(wait=True)

    def add_listener(self, listener: HistoryListener) -> Callable[[], None]:
        """Register *listener* for post-mutation notifications.

        Returns:
            A callable that unregisters the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _read(self) -> list[AnalysisRecord]:
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(self._io, self._read_raw)
        records = await asyncio.to_thread(decode_history, raw)
        self._last_known = list(records)
        return records

    async def _read_for_update(self) -> list[AnalysisRecord] | None:
        """Read before a mutation; None (reported, nothing written) on failure."""
        try:
            return await self._read()
        except PersistenceError as exc:
            logger.error("%s; history left unchanged", exc)
            self._report(exc)
            return None

    def _read_raw(self) -> str | None:
        """Worker-thread read of the serialized collection."""
        try:
            return self._repo.get_value(STORAGE_KEY)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not read history: {exc}") from exc

    def _write(self, records: list[AnalysisRecord]) -> None:
        """Worker-thread encode + write, retried up to write_attempts times."""
        payload = encode_history(records)
        last_exc: Exception | None = None
        for attempt in range(1, self._write_attempts + 1):
            try:
                self._repo.set_value(STORAGE_KEY, payload)
                return
            except (sqlite3.Error, OSError) as exc:
                last_exc = exc
                logger.warning(
                    "History write attempt %d/%d failed: %s",
                    attempt,
                    self._write_attempts,
                    exc,
                )
        raise PersistenceError(
            f"Could not persist {len(records)} history records: {last_exc}"
        ) from last_exc

    def _schedule_write(self, records: list[AnalysisRecord]) -> None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._io, self._write, list(records))
        self._pending.add(future)
        future.add_done_callback(self._write_done)

    def _write_done(self, future: asyncio.Future[None]) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        if not isinstance(exc, PersistenceError):
            wrapped = PersistenceError(f"Unexpected history write failure: {exc}")
            wrapped.__cause__ = exc
            exc = wrapped
        logger.error("%s", exc)
        self._report(exc)

    def _report(self, exc: PersistenceError) -> None:
        if self._on_persist_error is not None:
            self._on_persist_error(exc)

    def _notify(self, records: list[AnalysisRecord]) -> None:
        self._last_known = list(records)
        for listener in list(self._listeners):
            try:
                listener(list(records))
            except Exception:
                logger.exception("History listener %r failed", listener)
