"""Recover a JSON payload from noisy model output.

Models and proxies wrap JSON in markdown fences, prefix it with prose, or
append duplicated stream fragments. The helpers here find the first bracket-
balanced span that actually parses and leave everything else alone.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_CODE_FENCE_RE = re.compile(r"^```(?:json|JSON)?[ \t]*\r?\n?(.*?)\r?\n?[ \t]*```$", re.DOTALL)

_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class JsonParseResult:
    """Outcome of a JSON parse: either ``value`` or a failure message."""

    ok: bool
    value: Any = None
    error: str | None = None


def try_parse_json(text: str) -> JsonParseResult:
    try:
        return JsonParseResult(ok=True, value=json.loads(text))
    except ValueError as e:
        return JsonParseResult(ok=False, error=str(e))


def strip_code_fence(text: str) -> str:
    """Unwrap text that is entirely one ```json (or bare ```) fenced block."""
    trimmed = text.strip()
    match = _CODE_FENCE_RE.match(trimmed)
    if match:
        return match.group(1).strip()
    return trimmed


def _balanced_span(text: str, start: int) -> str | None:
    """Return the bracket-balanced span opening at *start*, if it closes cleanly."""
    opener = text[start]
    if opener not in _CLOSERS:
        return None

    stack = [opener]
    in_string = False
    escaped = False
    for i in range(start + 1, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
            continue
        if in_string:
            if ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]"):
            if _CLOSERS[stack.pop()] != ch:
                return None
            if not stack:
                return text[start:i + 1]
    return None


def _scan(text: str, opener: str) -> str | None:
    start = text.find(opener)
    while start != -1:
        candidate = _balanced_span(text, start)
        if candidate is not None and try_parse_json(candidate).ok:
            return candidate
        start = text.find(opener, start + 1)
    return None


def extract_balanced_json(text: str, allow_array: bool = False) -> str | None:
    """Return the first parsable bracket-balanced JSON span in *text*.

    Object roots are tried before array roots so a small embedded array such as
    ``"files_modified": []`` inside malformed object text is not picked up.
    """
    found = _scan(text, "{")
    if found is not None:
        return found
    if allow_array:
        return _scan(text, "[")
    return None


def preprocess_json_response(text: str, allow_array: bool = False) -> str:
    """Strip a wrapping code fence and isolate the JSON payload.

    Text that already is one JSON object (or array, with *allow_array*) is
    returned whole, so multi-element arrays survive. When no span parses, the (fence-stripped) trimmed text is returned so the
    caller's parse fails with a meaningful error.
    """
    unfenced = strip_code_fence(text)
    whole = try_parse_json(unfenced)
    if whole.ok and (isinstance(whole.value, dict) or (allow_array and isinstance(whole.value, list))):
        return unfenced
    extracted = extract_balanced_json(unfenced, allow_array=allow_array)
    return extracted if extracted is not None else unfenced
