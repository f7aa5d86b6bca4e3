"""Follow-up conversation state."""

from screenlens.chat.session import ChatMessage, ConversationSession

__all__ = ["ChatMessage", "ConversationSession"]
