"""Per-analysis conversation log used to build follow-up requests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant"]

DEFAULT_DISPLAY_LIMIT = 50


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    text: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant"):
            raise ValueError(f"role must be 'user' or 'assistant', got {self.role!r}")


class ConversationSession:
    """Append-only message log for one analysis context.

    The whole log is sent with every follow-up; visible_messages is only a
    rendering window over the most recent messages.
    """

    def __init__(self, initial_summary: str = "", display_limit: int = DEFAULT_DISPLAY_LIMIT) -> None:
        self.initial_summary = initial_summary
        self.display_limit = display_limit
        self._messages: list[ChatMessage] = []

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def visible_messages(self) -> tuple[ChatMessage, ...]:
        if len(self._messages) > self.display_limit:
            return tuple(self._messages[-self.display_limit:])
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def seed(self, initial_summary: str | None = None) -> bool:
        """Seed the log with the analysis summary as the first assistant message.

        Only takes effect while the log is empty. Returns True if seeded.
        """
        if self._messages:
            return False
        if initial_summary is not None:
            self.initial_summary = initial_summary
        self._messages.append(ChatMessage(role="assistant", text=self.initial_summary))
        return True

    def add_user(self, text: str) -> ChatMessage:
        message = ChatMessage(role="user", text=text)
        self._messages.append(message)
        return message

    def add_assistant(self, text: str) -> ChatMessage:
        message = ChatMessage(role="assistant", text=text)
        self._messages.append(message)
        return message
