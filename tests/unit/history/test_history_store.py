"""Tests for HistoryRepository: retention, persistence and notifications."""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from screenlens.config import HistoryCfg
from screenlens.db.models import AnalysisRecord
from screenlens.db.repository import Repository
from screenlens.errors import PersistenceError
from screenlens.history.store import (
    STORAGE_KEY,
    HistoryRepository,
    decode_history,
    encode_history,
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


class CountingRepository(Repository):
    """Repository that records how many writes reached the database."""

    def __init__(self, conn):
        super().__init__(conn)
        self.writes = 0

    def set_value(self, key, value):
        self.writes += 1
        super().set_value(key, value)


class FailingRepository(Repository):
    def __init__(self, conn):
        super().__init__(conn)
        self.attempts = 0

    def set_value(self, key, value):
        self.attempts += 1
        raise sqlite3.OperationalError("database is locked")


class FlakyReadRepository(Repository):
    """Repository whose next ``fail_reads`` reads raise a locked-database error."""

    def __init__(self, conn):
        super().__init__(conn)
        self.fail_reads = 0

    def get_value(self, key):
        if self.fail_reads:
            self.fail_reads -= 1
            raise sqlite3.OperationalError("database is locked")
        return super().get_value(key)


def _summaries(records: list[AnalysisRecord]) -> list[str]:
    return [r.summary for r in records]


# ------------------------------------------------------------------
# Serialization
# ------------------------------------------------------------------


def test_encode_decode_keeps_order():
    records = [AnalysisRecord.create("", f"s{i}") for i in range(3)]
    assert decode_history(encode_history(records)) == records


def test_decode_missing_is_empty():
    assert decode_history(None) == []
    assert decode_history("") == []


@pytest.mark.parametrize("raw", ["{not json", '{"id": "x"}', '[{"id": "x"}]'])
def test_decode_corrupt_is_empty(raw):
    assert decode_history(raw) == []


# ------------------------------------------------------------------
# append / retention
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_load_empty_store(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    assert await history.load() == []
    await history.close()


@pytest.mark.asyncio
async def test_append_puts_newest_first(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    await history.append("", "first")
    records = await history.append(" translate ", "second")
    assert _summaries(records) == ["second", "first"]
    assert records[0].instruction == "translate"
    await history.close()


@pytest.mark.asyncio
async def test_append_is_durable(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    appended = await history.append("", "kept")
    await history.close()

    reopened = HistoryRepository(Repository(tmp_db))
    assert await reopened.load() == appended
    await reopened.close()


@pytest.mark.asyncio
async def test_load_observes_scheduled_write(tmp_db):
    """A read issued right after a mutation sees it, without an explicit flush."""
    history = HistoryRepository(Repository(tmp_db))
    await history.append("", "just written")
    assert _summaries(await history.load()) == ["just written"]
    await history.close()


@pytest.mark.asyncio
async def test_retention_evicts_oldest(tmp_db):
    history = HistoryRepository(Repository(tmp_db), HistoryCfg(max_count=5))
    for i in range(7):
        records = await history.append("", f"s{i}")
    assert _summaries(records) == ["s6", "s5", "s4", "s3", "s2"]
    await history.close()


@pytest.mark.asyncio
async def test_retention_limit_change_applies_on_next_append(tmp_db):
    cfg = HistoryCfg(max_count=20)
    history = HistoryRepository(Repository(tmp_db), cfg)
    for i in range(10):
        await history.append("", f"s{i}")
    cfg.max_count = 5
    records = await history.append("", "s10")
    assert len(records) == 5
    assert records[0].summary == "s10"
    await history.close()


@pytest.mark.asyncio
async def test_disabled_history_does_not_write(tmp_db):
    repo = CountingRepository(tmp_db)
    history = HistoryRepository(repo, HistoryCfg(enabled=False))
    records = await history.append("", "ignored")
    await history.flush()
    assert records == []
    assert repo.writes == 0
    assert repo.get_value(STORAGE_KEY) is None
    await history.close()


@pytest.mark.asyncio
async def test_concurrent_appends_are_not_lost(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    await asyncio.gather(*(history.append("", f"s{i}") for i in range(10)))
    records = await history.load()
    assert sorted(_summaries(records)) == sorted(f"s{i}" for i in range(10))
    assert len({r.id for r in records}) == 10
    await history.close()


# ------------------------------------------------------------------
# delete / clear
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_removes_record(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    await history.append("", "a")
    records = await history.append("", "b")
    remaining = await history.delete(records[0].id)
    assert _summaries(remaining) == ["a"]
    assert _summaries(await history.load()) == ["a"]
    await history.close()


@pytest.mark.asyncio
async def test_delete_unknown_id_writes_nothing(tmp_db):
    repo = CountingRepository(tmp_db)
    history = HistoryRepository(repo)
    await history.append("", "a")
    await history.flush()
    writes_before = repo.writes

    records = await history.delete("no-such-id")
    await history.flush()
    assert _summaries(records) == ["a"]
    assert repo.writes == writes_before
    await history.close()


@pytest.mark.asyncio
async def test_clear_empties_history(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    await history.append("", "a")
    assert await history.clear() == []
    assert await history.load() == []
    await history.close()


# ------------------------------------------------------------------
# Failures and corrupt data
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_corrupt_stored_data_loads_empty(tmp_db):
    Repository(tmp_db).set_value(STORAGE_KEY, "{{{")
    history = HistoryRepository(Repository(tmp_db))
    assert await history.load() == []
    records = await history.append("", "fresh")
    assert _summaries(records) == ["fresh"]
    await history.close()


@pytest.mark.asyncio
async def test_write_failure_is_reported_not_raised(tmp_db):
    errors: list[PersistenceError] = []
    repo = FailingRepository(tmp_db)
    history = HistoryRepository(repo, on_persist_error=errors.append, write_attempts=3)

    records = await history.append("", "unsaved")
    await history.flush()

    assert _summaries(records) == ["unsaved"]
    assert repo.attempts == 3
    assert len(errors) == 1
    assert "database is locked" in str(errors[0])
    await history.close()


# ------------------------------------------------------------------
# Listeners
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_listeners_receive_new_collection(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    seen: list[list[str]] = []
    unsubscribe = history.add_listener(lambda records: seen.append(_summaries(records)))

    await history.append("", "a")
    await history.clear()
    unsubscribe()
    await history.append("", "b")

    assert seen == [["a"], []]
    await history.close()


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_mutation(tmp_db):
    history = HistoryRepository(Repository(tmp_db))
    seen: list[int] = []

    def _boom(records):
        raise RuntimeError("listener bug")

    history.add_listener(_boom)
    history.add_listener(lambda records: seen.append(len(records)))
    records = await history.append("", "a")
    assert len(records) == 1
    assert seen == [1]
    await history.close()


@pytest.mark.asyncio
async def test_read_failure_during_append_keeps_stored_history(tmp_db):
    errors: list[PersistenceError] = []
    repo = FlakyReadRepository(tmp_db)
    history = HistoryRepository(repo, on_persist_error=errors.append)
    for i in range(5):
        await history.append("", f"s{i}")
    await history.flush()

    repo.fail_reads = 1
    records = await history.append("", "new")
    await history.flush()

    assert _summaries(records) == ["s4", "s3", "s2", "s1", "s0"]
    assert len(errors) == 1
    assert "database is locked" in str(errors[0])
    assert len(await history.load()) == 5
    await history.close()


@pytest.mark.asyncio
async def test_read_failure_during_delete_writes_nothing(tmp_db):
    repo = FlakyReadRepository(tmp_db)
    history = HistoryRepository(repo)
    first = await history.append("", "a")
    await history.append("", "b")
    await history.flush()

    repo.fail_reads = 1
    records = await history.delete(first[0].id)
    await history.flush()

    assert _summaries(records) == ["b", "a"]
    assert _summaries(await history.load()) == ["b", "a"]
    await history.close()
