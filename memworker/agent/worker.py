"""Observation agent: drives one session's provider turns and persists results."""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from memworker.agent.prompts import (
    build_continuation_prompt,
    build_init_prompt,
    build_observation_prompt,
    build_summary_prompt,
)
from memworker.agent.types import (
    ActiveSession,
    FallbackAgent,
    MessageQueue,
    ModeProvider,
    ObservationSink,
    PendingMessage,
    TurnRecord,
)
from memworker.config.schema import ModeConfig
from memworker.logging import get_logger
from memworker.parsing.observations import parse_observations_json, parse_summary_json
from memworker.providers.base import ProviderResponse
from memworker.providers.client import ProviderClient
from memworker.providers.errors import (
    MalformedResponseError,
    ProviderApiError,
    ProviderCancelledError,
    ProviderHttpError,
    ProviderTimeoutError,
)
from memworker.session.history import ConversationMessage

logger = get_logger(__name__)

# Providers report one total; split it for the session's input/output counters.
_INPUT_TOKEN_SHARE = 0.7
_OUTPUT_TOKEN_SHARE = 0.3


def should_fallback(error: BaseException) -> bool:
    """True for provider-side failures where another backend may do better."""
    if isinstance(error, ProviderApiError):
        return True
    if isinstance(error, ProviderHttpError):
        return error.status == 429 or error.status >= 500
    return isinstance(error, (ProviderTimeoutError, MalformedResponseError, httpx.TransportError))


def _now_ms() -> int:
    return int(time.time() * 1000)


class ObservationAgent:
    """Turns a session's queued tool uses into observations and summaries.

    Turns run strictly one after another: each prompt is appended to the
    session history, the provider sees a truncated view of it, and the reply
    is appended before the next prompt is built.
    """

    def __init__(
        self,
        provider: ProviderClient,
        queue: MessageQueue,
        sink: ObservationSink,
        modes: ModeProvider,
        fallback_agent: FallbackAgent | None = None,
    ) -> None:
        self.provider = provider
        self.queue = queue
        self.sink = sink
        self.modes = modes
        self.fallback_agent = fallback_agent

    def set_fallback_agent(self, agent: FallbackAgent) -> None:
        self.fallback_agent = agent

    async def start_session(self, session: ActiveSession) -> None:
        """Run the init turn, then every pending message until the queue ends.

        Cancellation is re-raised. Provider-side failures hand the session to
        the fallback agent (in-flight messages go back to pending) when one is
        set; anything else is logged and re-raised.
        """
        with structlog.contextvars.bound_contextvars(session_db_id=session.session_db_id):
            try:
                await self._run(session)
            except (ProviderCancelledError, asyncio.CancelledError):
                logger.warning("Custom agent aborted")
                raise
            except Exception as e:
                if self.fallback_agent is not None and should_fallback(e):
                    logger.warning(
                        "Custom API failed, falling back",
                        error=str(e),
                        history_length=len(session.conversation_history),
                    )
                    self._reset_processing(session)
                    await self.fallback_agent.start_session(session)
                    return
                logger.exception("Custom agent error")
                raise

    async def _run(self, session: ActiveSession) -> None:
        self._ensure_memory_session_id(session)

        mode = self.modes.get_active_mode()
        if session.last_prompt_number == 1:
            init_prompt = build_init_prompt(session.user_prompt, mode)
        else:
            init_prompt = build_continuation_prompt(session.user_prompt, mode)

        response = await self._query(session, init_prompt)
        if response.content:
            self._store_observations(session, response, mode, created_at=None, cwd=None)
        else:
            logger.debug("Empty init response, model chose to skip", model=self.provider.config.model)

        last_cwd: str | None = None
        async for message in self.queue.iterate(session.session_db_id):
            if message.persistent_id is not None:
                session.processing_message_ids.append(message.persistent_id)
            if message.cwd:
                last_cwd = message.cwd

            if message.type == "observation":
                await self._observe(session, message, last_cwd)
            elif message.type == "summarize":
                await self._summarize(session, message, last_cwd)
            else:
                logger.warning("Unknown pending message type", message_type=message.type)
            self._confirm(session, message)

        logger.info(
            "Custom agent completed",
            duration_s=round(time.monotonic() - session.start_time, 1),
            history_length=len(session.conversation_history),
        )

    async def _query(self, session: ActiveSession, prompt: str) -> ProviderResponse:
        session.conversation_history.append(ConversationMessage("user", prompt))
        response = await self.provider.query_json_multi_turn(
            session.conversation_history,
            cancel=session.cancel,
        )
        if response.content:
            session.conversation_history.append(ConversationMessage("assistant", response.content))
            self._account_tokens(session, response.tokens_used or 0)
        return response

    async def _observe(self, session: ActiveSession, message: PendingMessage, last_cwd: str | None) -> None:
        if message.prompt_number is not None:
            session.last_prompt_number = message.prompt_number
        created_at = message.original_timestamp or session.earliest_pending_timestamp

        mode = self.modes.get_active_mode()
        prompt = build_observation_prompt(
            message.tool_name or "",
            message.tool_input,
            message.tool_response,
            created_at or _now_ms(),
            mode,
            cwd=message.cwd,
        )
        response = await self._query(session, prompt)
        if not response.content:
            logger.debug(
                "Empty observation response, model chose to skip",
                model=self.provider.config.model,
                prompt_number=session.last_prompt_number,
            )
            return
        self._store_observations(session, response, mode, created_at=created_at, cwd=last_cwd)

    async def _summarize(self, session: ActiveSession, message: PendingMessage, last_cwd: str | None) -> None:
        mode = self.modes.get_active_mode()
        prompt = build_summary_prompt(
            message.last_assistant_message or "",
            mode,
            session_db_id=session.session_db_id,
        )
        response = await self._query(session, prompt)
        if not response.content:
            logger.warning("Custom returned empty summary response")
            return

        logger.debug("Custom JSON summary response received", response_length=len(response.content))
        summary = parse_summary_json(response.content, session_id=session.session_db_id)
        self.sink.store(
            TurnRecord(
                session_db_id=session.session_db_id,
                memory_session_id=session.memory_session_id,
                project=session.project,
                summary=summary,
                prompt_number=session.last_prompt_number,
                tokens_used=response.tokens_used or 0,
                created_at_epoch=message.original_timestamp or session.earliest_pending_timestamp,
                cwd=last_cwd,
            )
        )

    def _store_observations(
        self,
        session: ActiveSession,
        response: ProviderResponse,
        mode: ModeConfig,
        *,
        created_at: int | None,
        cwd: str | None,
    ) -> None:
        observations = parse_observations_json(
            response.content,
            mode.valid_types,
            correlation_id=f"{session.session_db_id}:{session.last_prompt_number}",
        )
        self.sink.store(
            TurnRecord(
                session_db_id=session.session_db_id,
                memory_session_id=session.memory_session_id,
                project=session.project,
                observations=observations,
                prompt_number=session.last_prompt_number,
                tokens_used=response.tokens_used or 0,
                created_at_epoch=created_at,
                cwd=cwd,
            )
        )

    def _ensure_memory_session_id(self, session: ActiveSession) -> None:
        if session.memory_session_id:
            return
        synthetic = f"custom-{session.content_session_id}-{_now_ms()}"
        session.memory_session_id = synthetic
        self.sink.update_memory_session_id(session.session_db_id, synthetic)
        logger.info("Generated memory session id", memory_session_id=synthetic)

    @staticmethod
    def _account_tokens(session: ActiveSession, tokens_used: int) -> None:
        session.cumulative_input_tokens += int(tokens_used * _INPUT_TOKEN_SHARE)
        session.cumulative_output_tokens += int(tokens_used * _OUTPUT_TOKEN_SHARE)

    def _confirm(self, session: ActiveSession, message: PendingMessage) -> None:
        if message.persistent_id is None:
            return
        self.queue.confirm_processed(message.persistent_id)
        if message.persistent_id in session.processing_message_ids:
            session.processing_message_ids.remove(message.persistent_id)

    def _reset_processing(self, session: ActiveSession) -> None:
        for message_id in list(session.processing_message_ids):
            if not self.queue.reset_to_pending(message_id):
                logger.warning("Could not reset message to pending", message_id=message_id)
        session.processing_message_ids.clear()
