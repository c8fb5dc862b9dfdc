"""Session-scoped state: conversation history and its truncation policy."""

from memworker.session.history import ConversationMessage, estimate_tokens, truncate_history

__all__ = ["ConversationMessage", "estimate_tokens", "truncate_history"]
