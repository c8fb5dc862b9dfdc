"""Server-Sent-Events framing shared by both provider protocols."""

from __future__ import annotations

import json
import re
from typing import Any, Iterator

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def _iter_sse_fragments(text: str) -> Iterator[list[str]]:
    """Yield the ``data:`` fragments of every event in *text*, one list per event."""
    fragments: list[str] = []
    for raw_line in _LINE_SPLIT_RE.split(text):
        line = raw_line.rstrip()
        if not line:
            if fragments:
                yield fragments
                fragments = []
            continue
        if not line.startswith(_DATA_PREFIX):
            continue
        value = line[len(_DATA_PREFIX):]
        if value.startswith(" "):
            value = value[1:]
        fragments.append(value)

    if fragments:
        yield fragments


def iter_sse_payloads(text: str) -> Iterator[str]:
    """Yield the joined ``data:`` payload of every event in *text*.

    A blank line ends an event. Consecutive ``data:`` lines of one event are
    joined with ``"\\n"`` so a JSON document pretty-printed across several
    lines survives. Lines without the ``data:`` marker (comments, ``event:``,
    ``id:``) are ignored. The trailing event is flushed even without a final
    blank line.
    """
    for fragments in _iter_sse_fragments(text):
        payload = "\n".join(fragments).strip()
        if payload:
            yield payload


def _loads_object(payload: str) -> dict[str, Any] | None:
    if payload == DONE_SENTINEL:
        return None
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def iter_sse_json(text: str) -> Iterator[dict[str, Any]]:
    """Yield every event payload that parses as a JSON object.

    ``[DONE]`` terminators and undecodable events (proxy noise, partial frames)
    are skipped. Some proxies drop the blank separator between events; when a
    joined multi-line payload does not parse, each of its ``data:`` lines is
    tried on its own.
    """
    for fragments in _iter_sse_fragments(text):
        payload = "\n".join(fragments).strip()
        if not payload:
            continue
        data = _loads_object(payload)
        if data is not None:
            yield data
            continue
        if len(fragments) < 2:
            continue
        for fragment in fragments:
            data = _loads_object(fragment.strip())
            if data is not None:
                yield data


def parse_whole_json(text: str) -> dict[str, Any] | None:
    """Parse *text* as a single JSON object, for providers that ignore streaming."""
    trimmed = text.strip()
    if not trimmed.startswith("{"):
        return None
    try:
        data = json.loads(trimmed)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
