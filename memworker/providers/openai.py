"""OpenAI chat-completions wire format."""

from __future__ import annotations

from typing import Any, Sequence

from memworker.providers.base import ProviderResponse, embedded_error, positive_int, value_at
from memworker.providers.sse import iter_sse_json, parse_whole_json
from memworker.session.history import ConversationMessage

TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 4096

_COMPLETIONS_PATH = "/chat/completions"


def build_openai_url(base_url: str) -> str:
    """Accept ``https://host``, ``https://host/v1`` or a full completions endpoint."""
    clean = base_url.rstrip("/")
    if clean.endswith(_COMPLETIONS_PATH):
        return clean
    if clean.endswith("/v1"):
        return f"{clean}{_COMPLETIONS_PATH}"
    return f"{clean}/v1{_COMPLETIONS_PATH}"


def to_openai_messages(history: Sequence[ConversationMessage]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in history]


def build_openai_body(model: str, history: Sequence[ConversationMessage], streaming: bool) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": model,
        "messages": to_openai_messages(history),
        "temperature": TEMPERATURE,
        "max_tokens": MAX_OUTPUT_TOKENS,
        "response_format": {"type": "json_object"},
    }
    if streaming:
        body["stream"] = True
        body["stream_options"] = {"include_usage": True}
    return body


def build_openai_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def _content_text(content: Any) -> str:
    """Text of a message/delta ``content`` (plain string or list of text blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            text = item.get("text") if isinstance(item, dict) else None
            if isinstance(text, str) and text:
                parts.append(text)
        return "".join(parts)
    return ""


def parse_openai_response(data: dict[str, Any]) -> ProviderResponse:
    """Normalize a non-streaming chat-completions payload."""
    error = embedded_error(data)
    if error:
        return ProviderResponse(error=error)
    choice = value_at(data, "choices", 0) or {}
    content = _content_text(value_at(choice, "message", "content"))
    if not content:
        # Some proxies answer a non-stream request with a single delta chunk.
        content = _content_text(value_at(choice, "delta", "content"))
    return ProviderResponse(
        content=content,
        tokens_used=positive_int(value_at(data, "usage", "total_tokens")),
    )


def parse_openai_sse_stream(text: str) -> ProviderResponse:
    """Accumulate streamed deltas and usage; fall back to a whole-body JSON parse."""
    parts: list[str] = []
    tokens_used: int | None = None
    error: str | None = None
    events = 0

    for data in iter_sse_json(text):
        events += 1
        event_error = embedded_error(data)
        if event_error:
            error = error or event_error
            continue
        delta = _content_text(value_at(data, "choices", 0, "delta", "content"))
        if delta:
            parts.append(delta)
        usage = positive_int(value_at(data, "usage", "total_tokens"))
        if usage:
            tokens_used = usage

    if events == 0:
        whole = parse_whole_json(text)
        if whole is not None:
            return parse_openai_response(whole)

    return ProviderResponse(content="".join(parts), tokens_used=tokens_used, error=error)
