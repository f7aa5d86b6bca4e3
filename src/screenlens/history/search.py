"""Incremental substring search over the analysis history.

SearchIndex keeps one generation of lowercase entries, rebuilt wholesale off
the event loop and swapped in atomically.

SearchSession drives the interactive search surface as a state machine:

    IDLE ──input──▶ DEBOUNCING ──timer──▶ SCANNING ──scan done──▶ COMMITTED
      ▲                 │ input: restart timer          │ stale token: discard
      └──── dismiss ────┴───────────────────────────────┘

Every scan is tagged with a monotonically increasing token. A finished scan is
committed only if its token is still the latest one issued and the surface is
still presented, so an older, slower scan can never overwrite newer results.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from screenlens.db.models import AnalysisRecord

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DEFAULT_DEBOUNCE = 0.2  # seconds


@dataclass(frozen=True)
class SearchIndexEntry:
    """A record with its precomputed lowercase search fields."""

    record: AnalysisRecord
    summary_lower: str
    instruction_lower: str


Scanner = Callable[[Sequence[SearchIndexEntry], str], list[AnalysisRecord]]
ResultsHandler = Callable[[list[AnalysisRecord]], None]


def build_entries(records: Iterable[AnalysisRecord]) -> tuple[SearchIndexEntry, ...]:
    """Precompute lowercase summary/instruction for every record, in order."""
    return tuple(
        SearchIndexEntry(
            record=r,
            summary_lower=r.summary.lower(),
            instruction_lower=r.instruction.lower(),
        )
        for r in records
    )


def normalize_query(query: str, min_length: int = MIN_QUERY_LENGTH) -> str | None:
    """Return the trimmed, lowercased query, or None if it is too short to search."""
    trimmed = query.strip()
    if len(trimmed) < min_length:
        return None
    return trimmed.lower()


def match_entries(
    entries: Sequence[SearchIndexEntry],
    query: str,
    min_length: int = MIN_QUERY_LENGTH,
) -> list[AnalysisRecord]:
    """Return records whose summary or instruction contains *query*.

    Case-insensitive substring match; result order follows *entries*.
    Queries shorter than *min_length* after trimming match nothing.
    """
    needle = normalize_query(query, min_length)
    if needle is None:
        return []
    return [
        e.record
        for e in entries
        if needle in e.summary_lower or needle in e.instruction_lower
    ]


class SearchIndex:
    """Current generation of search entries over the history collection."""

    def __init__(self, records: Iterable[AnalysisRecord] = ()) -> None:
        self._entries: tuple[SearchIndexEntry, ...] = build_entries(records)
        self._generation = 0
        self._requested = 0

    @property
    def entries(self) -> tuple[SearchIndexEntry, ...]:
        return self._entries

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    async def rebuild(self, records: Iterable[AnalysisRecord]) -> None:
        """Build a new generation on a worker thread and swap it in.

        If another rebuild was requested meanwhile, this one is dropped.
        """
        self._requested += 1
        request = self._requested
        entries = await asyncio.to_thread(build_entries, list(records))
        if request != self._requested:
            return
        self._entries = entries
        self._generation += 1

    def match(self, query: str, min_length: int = MIN_QUERY_LENGTH) -> list[AnalysisRecord]:
        return match_entries(self._entries, query, min_length)


class SearchState(enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    SCANNING = "scanning"
    COMMITTED = "committed"


class SearchSession:
    """Debounced, token-guarded search over a SearchIndex.

    Must be driven from a running event loop (the coordination context);
    scans run on worker threads and are committed back on the loop.

    Args:
        index: Index to scan.
        debounce: Seconds the input must stay unchanged before it is searched.
        min_query_length: Shorter (trimmed) queries yield no results.
        scanner: Matching function run off the loop (defaults to match_entries).
        on_commit: Called with the results every time results are committed.
    """

    def __init__(
        self,
        index: SearchIndex,
        *,
        debounce: float = DEFAULT_DEBOUNCE,
        min_query_length: int = MIN_QUERY_LENGTH,
        scanner: Scanner | None = None,
        on_commit: ResultsHandler | None = None,
    ) -> None:
        self._index = index
        self._debounce = debounce
        self._min_length = min_query_length
        self._scanner: Scanner = scanner or (
            lambda entries, query: match_entries(entries, query, min_query_length)
        )
        self._on_commit = on_commit

        self.query = ""
        self.effective_query = ""
        self.results: list[AnalysisRecord] = []
        self.state = SearchState.IDLE

        self._active = False
        self._token = 0
        self._committed_token = 0
        self._debounce_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def token(self) -> int:
        """Latest token issued."""
        return self._token

    @property
    def committed_token(self) -> int:
        """Token of the currently visible results (0 before the first commit)."""
        return self._committed_token

    @property
    def index(self) -> SearchIndex:
        return self._index

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def present(self) -> None:
        """Search surface became active."""
        self._active = True

    def dismiss(self) -> None:
        """Search surface went away: cancel the timer, ignore in-flight scans."""
        self._active = False
        self._cancel_debounce()
        self.state = SearchState.IDLE

    def update_query(self, text: str) -> None:
        """Input changed: restart the debounce timer."""
        self.query = text
        self._cancel_debounce()
        self.state = SearchState.DEBOUNCING
        loop = asyncio.get_running_loop()
        self._debounce_task = loop.create_task(self._fire_after_debounce(text))

    async def refresh(self, records: Iterable[AnalysisRecord]) -> None:
        """Rebuild the index from *records* and re-run the last searched query.

        A query still in its debounce window is left to the timer, which scans
        the rebuilt index when it fires.
        """
        await self._index.rebuild(records)
        if self._debounce_task is not None:
            return
        self._recompute(self.effective_query)

    def on_history_changed(self, records: list[AnalysisRecord]) -> None:
        """HistoryRepository listener: schedule a refresh with the new collection."""
        self._track(asyncio.get_running_loop().create_task(self.refresh(records)))

    async def settle(self) -> None:
        """Wait until no debounce timer, scan or refresh is pending."""
        while True:
            pending = list(self._tasks)
            if self._debounce_task is not None:
                pending.append(self._debounce_task)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _fire_after_debounce(self, text: str) -> None:
        await asyncio.sleep(self._debounce)
        self._debounce_task = None
        self.effective_query = text
        self._recompute(text)

    def _recompute(self, query: str) -> None:
        if len(query.strip()) < self._min_length:
            # Advance the token so no older scan can commit over the empty set.
            self._token += 1
            self._commit(self._token, [])
            return
        if not self._active:
            self.state = SearchState.IDLE
            return

        self._token += 1
        token = self._token
        self.state = SearchState.SCANNING
        scan = self._scan(token, self._index.entries, query.strip())
        self._track(asyncio.get_running_loop().create_task(scan))

    async def _scan(
        self, token: int, entries: Sequence[SearchIndexEntry], query: str
    ) -> None:
        try:
            matches = await asyncio.to_thread(self._scanner, entries, query)
        except Exception:
            logger.exception("Search scan for %r failed", query)
            return
        if token != self._token or not self._active:
            logger.debug("Discarding stale search results (token %d, latest %d)", token, self._token)
            return
        self._commit(token, matches)

    def _commit(self, token: int, results: list[AnalysisRecord]) -> None:
        self.results = list(results)
        self._committed_token = token
        self.state = SearchState.COMMITTED
        if self._on_commit is not None:
            self._on_commit(self.results)

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    def _track(self, task: asyncio.Task[None]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
