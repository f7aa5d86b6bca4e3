"""Orchestration of one interactive session: analyse, record, chat, tag.

Assistant composes the gateway, the history repository, the search index and
the phone-tag client the way a screen's view model would. It never raises
gateway errors to its caller: failures come back as localized text.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field

from screenlens.chat.session import ChatMessage, ConversationSession
from screenlens.config import ScreenlensConfig
from screenlens.db.models import AnalysisRecord
from screenlens.db.repository import Repository
from screenlens.db.secret_store import SecretStore
from screenlens.gateway.client import ModelGatewayClient
from screenlens.gateway.prompts import caller_history_instruction, caller_lookup_instruction
from screenlens.history.search import SearchIndex, SearchSession
from screenlens.history.store import HistoryRepository, PersistErrorHandler
from screenlens.messages import format_analysis_failure, format_followup_failure
from screenlens.phone.tags import PhoneTag, PhoneTagLookupClient
from screenlens.text import detect_phone_numbers

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    """Result of one analysis run.

    Attributes:
        summary: Model answer, or the formatted error message on failure.
        succeeded: False if *summary* is an error message.
        error: The underlying exception on failure.
        history: History collection after the run (unchanged on failure).
        phone_numbers: Numbers detected in a successful summary.
    """

    summary: str
    succeeded: bool
    error: Exception | None = None
    history: list[AnalysisRecord] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)


class Assistant:
    def __init__(
        self,
        gateway: ModelGatewayClient,
        history: HistoryRepository,
        *,
        tag_client: PhoneTagLookupClient | None = None,
        chat_display_limit: int = 50,
        search_debounce: float = 0.0,
        search_min_length: int = 2,
    ) -> None:
        self.gateway = gateway
        self.history = history
        self.tag_client = tag_client if tag_client is not None else PhoneTagLookupClient()
        self.chat_display_limit = chat_display_limit
        self.search_debounce = search_debounce
        self.search_min_length = search_min_length

        self.is_thinking = False
        self.phone_tags: dict[str, PhoneTag] = {}
        self.loading_tags: set[str] = set()

        self.search_session = SearchSession(
            SearchIndex(),
            debounce=search_debounce,
            min_query_length=search_min_length,
        )
        self._unsubscribe = history.add_listener(self.search_session.on_history_changed)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def run_analysis(self, image: bytes | None, instruction: str) -> AnalysisOutcome | None:
        """Analyse *image* with *instruction* and record the result.

        Returns None without doing anything if an analysis is already running.
        """
        trimmed = instruction.strip()
        return await self._analyze(image, trimmed, trimmed)

    async def lookup_caller(self, image: bytes | None, note: str = "") -> AnalysisOutcome | None:
        """Analyse an incoming-call screenshot; recorded as ``查来电[：note]``."""
        return await self._analyze(
            image,
            caller_lookup_instruction(note),
            caller_history_instruction(note),
        )

    async def _analyze(
        self, image: bytes | None, prompt_instruction: str, history_instruction: str
    ) -> AnalysisOutcome | None:
        if self.is_thinking:
            logger.debug("Analysis already in progress, ignoring request")
            return None
        self.is_thinking = True
        try:
            summary = await self.gateway.analyze_screen(image, prompt_instruction)
        except Exception as exc:
            logger.info("Analysis failed: %s", exc)
            return AnalysisOutcome(
                summary=format_analysis_failure(exc),
                succeeded=False,
                error=exc,
            )
        finally:
            self.is_thinking = False

        # New numbers, new tags.
        self.phone_tags = {}
        self.loading_tags = set()
        records = await self.history.append(history_instruction, summary)
        return AnalysisOutcome(
            summary=summary,
            succeeded=True,
            history=records,
            phone_numbers=detect_phone_numbers(summary),
        )

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def start_conversation(self, summary: str) -> ConversationSession:
        session = ConversationSession(summary, display_limit=self.chat_display_limit)
        session.seed()
        return session

    async def send_follow_up(self, session: ConversationSession, text: str) -> ChatMessage | None:
        """Send *text* as the next user turn and append the reply.

        On failure a formatted error is appended as an assistant message
        instead. Blank input is ignored (returns None).
        """
        trimmed = text.strip()
        if not trimmed:
            return None
        session.add_user(trimmed)
        try:
            reply = await self.gateway.follow_up(session.initial_summary, session.messages)
        except Exception as exc:
            logger.info("Follow-up failed: %s", exc)
            return session.add_assistant(format_followup_failure(exc))
        return session.add_assistant(reply)

    # ------------------------------------------------------------------
    # History search
    # ------------------------------------------------------------------

    async def search(self, query: str) -> list[AnalysisRecord]:
        """Run *query* through the search session over the current history.

        The index is loaded on first use; history mutations keep it current
        and any rebuild they scheduled finishes before the query runs.
        """
        session = self.search_session
        session.present()
        await session.settle()
        if session.index.generation == 0:
            await session.refresh(await self.history.load())
        session.update_query(query)
        await session.settle()
        results = session.results
        session.dismiss()
        return results

    # ------------------------------------------------------------------
    # Phone tags
    # ------------------------------------------------------------------

    async def load_tag(self, number: str) -> PhoneTag | None:
        """Look up *number* once; repeated or concurrent calls do no extra I/O."""
        if not number:
            return None
        if number in self.phone_tags:
            return self.phone_tags[number]
        if number in self.loading_tags:
            return None
        self.loading_tags.add(number)
        try:
            tag = await self.tag_client.query_tag(number)
        except Exception:
            logger.debug("Phone tag lookup for %s raised", number, exc_info=True)
            tag = None
        finally:
            self.loading_tags.discard(number)
        if tag is not None:
            self.phone_tags[number] = tag
        return tag

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def warm_up(self, delay: float = 1.0) -> asyncio.Task[None]:
        return self.gateway.warm_up(delay)

    async def close(self) -> None:
        self._unsubscribe()
        await self.search_session.settle()
        await self.history.close()


def build_assistant(
    cfg: ScreenlensConfig,
    conn: sqlite3.Connection,
    *,
    on_persist_error: PersistErrorHandler | None = None,
) -> Assistant:
    """Wire an Assistant to the database behind *conn* using *cfg*."""
    gateway = ModelGatewayClient(
        cfg.provider,
        SecretStore(conn),
        jpeg_quality=cfg.image.jpeg_quality,
    )
    history = HistoryRepository(
        Repository(conn),
        cfg.history,
        on_persist_error=on_persist_error,
    )
    return Assistant(
        gateway,
        history,
        tag_client=PhoneTagLookupClient(cfg.phone_tags),
        chat_display_limit=cfg.chat.display_limit,
        search_debounce=cfg.search.debounce_ms / 1000,
        search_min_length=cfg.search.min_query_length,
    )
