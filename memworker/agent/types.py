"""Session state and the collaborator interfaces the observation agent needs."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal, Protocol

from memworker.config.schema import ModeConfig
from memworker.parsing.observations import ParsedObservation, ParsedSummary
from memworker.session.history import ConversationMessage


@dataclass
class PendingMessage:
    """One queued unit of work: a tool use to observe, or a summarize request."""

    type: Literal["observation", "summarize"]
    persistent_id: int | None = None
    tool_name: str | None = None
    tool_input: Any = None
    tool_response: Any = None
    cwd: str | None = None
    prompt_number: int | None = None
    last_assistant_message: str | None = None
    original_timestamp: int | None = None  # epoch ms


@dataclass
class ActiveSession:
    """In-memory state of one observed session.

    ``conversation_history`` is append-only and owned by the session; the
    agent only ever hands truncated views of it to a provider.
    """

    session_db_id: int
    content_session_id: str
    project: str
    user_prompt: str
    memory_session_id: str | None = None
    last_prompt_number: int = 1
    conversation_history: list[ConversationMessage] = field(default_factory=list)
    cumulative_input_tokens: int = 0
    cumulative_output_tokens: int = 0
    earliest_pending_timestamp: int | None = None
    processing_message_ids: list[int] = field(default_factory=list)
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    start_time: float = field(default_factory=time.monotonic)


@dataclass
class TurnRecord:
    """What one provider round-trip produced, handed to the persistence sink."""

    session_db_id: int
    memory_session_id: str | None
    project: str
    observations: list[ParsedObservation] = field(default_factory=list)
    summary: ParsedSummary | None = None
    prompt_number: int = 1
    tokens_used: int = 0
    created_at_epoch: int | None = None
    cwd: str | None = None


class MessageQueue(Protocol):
    def iterate(self, session_db_id: int) -> AsyncIterator[PendingMessage]: ...
    def confirm_processed(self, message_id: int) -> None: ...
    def reset_to_pending(self, message_id: int) -> bool: ...


class ObservationSink(Protocol):
    def update_memory_session_id(self, session_db_id: int, memory_session_id: str) -> None: ...
    def store(self, record: TurnRecord) -> None: ...


class ModeProvider(Protocol):
    def get_active_mode(self) -> ModeConfig: ...


class FallbackAgent(Protocol):
    async def start_session(self, session: ActiveSession) -> None: ...
