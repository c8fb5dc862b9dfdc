"""Multi-turn JSON queries against an OpenAI- or Gemini-shaped endpoint."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Sequence

import httpx

from memworker.config.schema import ProviderConfig
from memworker.logging import get_logger, mask_secret
from memworker.providers import gemini, openai
from memworker.providers.base import ProviderResponse
from memworker.providers.errors import (
    MalformedResponseError,
    ProviderApiError,
    ProviderHttpError,
    ProviderNotConfiguredError,
)
from memworker.providers.http import FetchResult, fetch_with_timeout_and_retry
from memworker.session.history import ConversationMessage, truncate_history

logger = get_logger(__name__)

_BODY_PREVIEW_CHARS = 500


def build_api_url(base_url: str, protocol: str, model: str, streaming: bool = False) -> str:
    """Endpoint for *protocol*; OpenAI streams over the same completions URL."""
    if protocol == "gemini":
        return gemini.build_gemini_url(base_url, model, streaming)
    return openai.build_openai_url(base_url)


class ProviderClient:
    """Query one configured provider with the session's conversation history.

    The caller owns the history; this class only reads a truncated view of it.
    Pass an ``httpx.AsyncClient`` to share connections or inject a transport.
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def label(self) -> str:
        return "Custom/Gemini" if self.config.protocol == "gemini" else "Custom/OpenAI"

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            # Timeouts are enforced by the fetch layer, not by httpx.
            self._http = httpx.AsyncClient(timeout=None)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> ProviderClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _build_request(self, history: Sequence[ConversationMessage]) -> httpx.Request:
        cfg = self.config
        url = build_api_url(cfg.api_url, cfg.protocol, cfg.model, cfg.streaming)
        if cfg.protocol == "gemini":
            headers = gemini.build_gemini_headers(cfg.api_key)
            body = gemini.build_gemini_body(cfg.model, history)
        else:
            headers = openai.build_openai_headers(cfg.api_key)
            body = openai.build_openai_body(cfg.model, history, cfg.streaming)
        return self._client().build_request("POST", url, headers=headers, json=body)

    def _scrub(self, text: str) -> str:
        key = self.config.api_key
        if key and key in text:
            return text.replace(key, mask_secret(key))
        return text

    def _decode(self, result: FetchResult) -> ProviderResponse:
        cfg = self.config
        if cfg.streaming:
            if cfg.protocol == "gemini":
                return gemini.parse_gemini_stream_response(result.body)
            return openai.parse_openai_sse_stream(result.body)

        try:
            data = json.loads(result.body)
        except ValueError as e:
            raise MalformedResponseError(result.status, str(e), label=self.label) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(
                result.status, f"expected a JSON object, got {type(data).__name__}", label=self.label
            )
        if cfg.protocol == "gemini":
            return gemini.parse_gemini_response(data)
        return openai.parse_openai_response(data)

    async def query_json_multi_turn(
        self,
        history: Sequence[ConversationMessage],
        cancel: asyncio.Event | None = None,
    ) -> ProviderResponse:
        """Send the truncated history and return the normalized response.

        Raises:
            ProviderNotConfiguredError: URL or key missing.
            ProviderHttpError: Non-2xx status.
            ProviderApiError: 2xx body carrying an ``error`` object.
            MalformedResponseError: Non-streaming body that is not JSON.
            ProviderTimeoutError / ProviderCancelledError: from the fetch layer.
        """
        cfg = self.config
        if not cfg.is_configured:
            raise ProviderNotConfiguredError(
                "Custom provider not configured: set MEMWORKER_CUSTOM_API_URL and MEMWORKER_CUSTOM_API_KEY"
            )

        window = truncate_history(history, cfg.max_context_messages, cfg.max_tokens)
        request = self._build_request(window)
        logger.debug(
            "Querying provider",
            provider=self.label,
            model=cfg.model,
            streaming=cfg.streaming,
            turns=len(window),
            total_chars=sum(len(m.content) for m in window),
            url=str(request.url),
        )

        result = await fetch_with_timeout_and_retry(
            self._client(),
            request,
            first_byte_timeout=cfg.first_token_timeout_seconds,
            total_timeout=cfg.total_timeout_seconds,
            cancel=cancel,
            max_retries=cfg.max_retries,
        )
        if not result.ok:
            raise ProviderHttpError(result.status, self._scrub(result.body), label=self.label)

        response = self._decode(result)
        if response.error:
            raise ProviderApiError(result.status, self._scrub(response.error), label=self.label)
        if response.is_empty:
            logger.warning(
                "Empty response from provider",
                provider=self.label,
                model=cfg.model,
                streaming=cfg.streaming,
                body_length=len(result.body),
                body_preview=self._scrub(result.body[:_BODY_PREVIEW_CHARS]),
            )
        return response
