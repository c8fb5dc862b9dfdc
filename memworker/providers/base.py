"""Uniform provider response shared by the protocol adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ProviderResponse:
    """Text and usage extracted from one provider round-trip.

    ``content`` may legitimately be empty: the model is allowed to emit nothing.
    ``error`` carries a provider-embedded error message, if any.
    """

    content: str = ""
    tokens_used: int | None = None
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.content


def value_at(data: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists, returning None at the first missing step."""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
        if current is None:
            return None
    return current


def positive_int(value: Any) -> int | None:
    """Return *value* as a token count, or None for missing/zero/garbage."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, float) and value > 0:
        return int(value)
    return None


def embedded_error(data: Any) -> str | None:
    """Format a top-level ``{"error": ...}`` object as ``"<code> - <message>"``."""
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not error:
        return None
    if isinstance(error, str):
        return error
    if not isinstance(error, dict):
        return str(error)
    code = error.get("code") or error.get("status") or error.get("type")
    message = error.get("message") or ""
    if code and message:
        return f"{code} - {message}"
    return str(message or code or error)
