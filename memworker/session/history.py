"""Conversation history and the context-window truncation policy."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Sequence

from memworker.logging import get_logger

logger = get_logger(__name__)

Role = Literal["user", "assistant"]

CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    content: str


def estimate_tokens(text: str) -> int:
    """Fixed-ratio estimate, not a tokenizer: ``ceil(len / 4)``."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _latest_user_message(history: Sequence[ConversationMessage]) -> ConversationMessage | None:
    for msg in reversed(history):
        if msg.role == "user":
            return msg
    return None


def truncate_history(
    history: Sequence[ConversationMessage],
    max_context_messages: int = 0,
    max_tokens: int = 0,
) -> Sequence[ConversationMessage]:
    """Return the newest suffix of *history* that fits both budgets.

    A limit of 0 disables it; with both disabled, or when the history already
    fits, the input is returned as is. The window always starts with a user
    message. If trimming leaves no user message, the latest user message of the
    full history is returned alone, even when it exceeds ``max_tokens``.
    The stored history is never modified.
    """
    if max_context_messages <= 0 and max_tokens <= 0:
        return history

    total_tokens = sum(estimate_tokens(m.content) for m in history)
    within_messages = max_context_messages <= 0 or len(history) <= max_context_messages
    within_tokens = max_tokens <= 0 or total_tokens <= max_tokens
    if within_messages and within_tokens:
        return history

    window: list[ConversationMessage] = []
    token_count = 0
    for index in range(len(history) - 1, -1, -1):
        msg = history[index]
        msg_tokens = estimate_tokens(msg.content)
        exceeds_messages = max_context_messages > 0 and len(window) >= max_context_messages
        exceeds_tokens = max_tokens > 0 and token_count + msg_tokens > max_tokens
        if exceeds_messages or exceeds_tokens:
            logger.warning(
                "Context window truncated to prevent runaway costs",
                original_messages=len(history),
                kept_messages=len(window),
                dropped_messages=index + 1,
                estimated_tokens=token_count,
                token_limit=max_tokens,
                message_limit=max_context_messages,
            )
            break
        window.append(msg)
        token_count += msg_tokens
    window.reverse()

    # Providers reject assistant-first histories.
    first_user = next((i for i, m in enumerate(window) if m.role == "user"), None)
    if first_user is not None:
        if first_user:
            logger.debug("Dropped leading assistant messages from window", dropped=first_user)
        return window[first_user:]

    latest_user = _latest_user_message(history)
    if latest_user is None:
        logger.warning("History has no user message to fall back to", original_messages=len(history))
        return []
    logger.warning(
        "Truncated window has no user message, keeping only the latest user message",
        estimated_tokens=estimate_tokens(latest_user.content),
        token_limit=max_tokens,
    )
    return [latest_user]
