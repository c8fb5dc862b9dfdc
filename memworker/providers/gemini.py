"""Gemini generateContent wire format."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from memworker.providers.base import ProviderResponse, embedded_error, positive_int, value_at
from memworker.providers.sse import iter_sse_json, parse_whole_json
from memworker.session.history import ConversationMessage

TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 4096


def build_gemini_url(base_url: str, model: str, streaming: bool = False) -> str:
    """Build ``{host}/v1beta/models/{model}:{action}``.

    The base may be a bare host, already end in ``/v1beta`` or
    ``/v1beta/models``, or be a complete endpoint; the result never repeats
    path segments.
    """
    clean = base_url.rstrip("/")
    marker = clean.find("/v1beta")
    if marker != -1:
        clean = clean[:marker]
    clean_model = model[len("models/"):] if model.startswith("models/") else model
    action = "streamGenerateContent" if streaming else "generateContent"
    # alt=sse makes the stream arrive as data: framed events
    suffix = "?alt=sse" if streaming else ""
    return f"{clean}/v1beta/models/{clean_model}:{action}{suffix}"


def build_generation_config(model: str, json_mode: bool = True) -> dict[str, Any]:
    config: dict[str, Any] = {
        "temperature": TEMPERATURE,
        "maxOutputTokens": MAX_OUTPUT_TOKENS,
    }
    if json_mode:
        config["responseMimeType"] = "application/json"
    if model.startswith("gemini-3"):
        config["thinkingConfig"] = {"thinkingLevel": "minimal"}
    return config


def to_gemini_contents(history: Sequence[ConversationMessage]) -> list[dict[str, Any]]:
    return [
        {
            "role": "model" if m.role == "assistant" else "user",
            "parts": [{"text": m.content}],
        }
        for m in history
    ]


def build_gemini_body(model: str, history: Sequence[ConversationMessage]) -> dict[str, Any]:
    return {
        "contents": to_gemini_contents(history),
        "generationConfig": build_generation_config(model, json_mode=True),
    }


def build_gemini_headers(api_key: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "x-goog-api-key": api_key,
    }


def extract_response_text(parts: Sequence[Any] | None) -> str:
    """Join the text of non-thinking parts in order.

    Parts flagged ``thought`` or carrying a ``thoughtSignature`` are reasoning
    traces and never part of the output.
    """
    if not parts:
        return ""
    texts: list[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if part.get("thought") or part.get("thoughtSignature"):
            continue
        text = part.get("text")
        if isinstance(text, str) and text:
            texts.append(text)
    return "".join(texts)


@dataclass
class GeminiStream:
    parts: list[dict[str, Any]] = field(default_factory=list)
    tokens_used: int | None = None
    error: str | None = None


def _collect(data: dict[str, Any], stream: GeminiStream) -> None:
    error = embedded_error(data)
    if error:
        stream.error = stream.error or error
        return
    parts = value_at(data, "candidates", 0, "content", "parts")
    if isinstance(parts, list):
        stream.parts.extend(p for p in parts if isinstance(p, dict))
    tokens = positive_int(value_at(data, "usageMetadata", "totalTokenCount"))
    if tokens:
        stream.tokens_used = tokens


def parse_gemini_sse_stream(text: str) -> GeminiStream:
    """Collect parts and usage from an SSE body.

    Falls back to one JSON document when the proxy ignored ``alt=sse``.
    """
    stream = GeminiStream()
    for data in iter_sse_json(text):
        _collect(data, stream)

    if not stream.parts and stream.error is None:
        whole = parse_whole_json(text)
        if whole is not None:
            _collect(whole, stream)
    return stream


def parse_gemini_response(data: dict[str, Any]) -> ProviderResponse:
    """Normalize a non-streaming generateContent payload."""
    stream = GeminiStream()
    _collect(data, stream)
    return _to_response(stream)


def parse_gemini_stream_response(text: str) -> ProviderResponse:
    return _to_response(parse_gemini_sse_stream(text))


def _to_response(stream: GeminiStream) -> ProviderResponse:
    if stream.error:
        return ProviderResponse(error=stream.error)
    return ProviderResponse(
        content=extract_response_text(stream.parts),
        tokens_used=stream.tokens_used,
    )
