"""JSON-mode prompt builders for the observation agent."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from memworker.config.schema import ModeConfig
from memworker.logging import get_logger

logger = get_logger(__name__)

_LANGUAGE_RE = re.compile(r"LANGUAGE REQUIREMENTS:[^\n]+")

_JSON_ONLY = (
    "IMPORTANT: You MUST respond with ONLY a valid JSON object. "
    "No explanations, no markdown, no thinking process - JUST the raw JSON."
)


def _type_lines(mode: ModeConfig) -> str:
    return "\n".join(f'  - "{t.id}": {t.description}' for t in mode.observation_types)


def _session_context(user_prompt: str) -> str:
    today = datetime.now(timezone.utc).date().isoformat()
    return (
        "<observed_from_primary_session>\n"
        f"  <user_request>{user_prompt}</user_request>\n"
        f"  <requested_at>{today}</requested_at>\n"
        "</observed_from_primary_session>"
    )


def _observation_format(mode: ModeConfig) -> str:
    p = mode.prompt
    example = {
        "type": mode.valid_types[0] if mode.valid_types else "",
        "title": p("xml_title_placeholder"),
        "subtitle": p("xml_subtitle_placeholder"),
        "facts": [p("xml_fact_placeholder"), p("xml_fact_placeholder")],
        "narrative": p("xml_narrative_placeholder"),
        "concepts": [p("xml_concept_placeholder")],
        "files_read": [p("xml_file_placeholder")],
        "files_modified": [p("xml_file_placeholder")],
    }
    guidance = "\n".join(g for g in (p("field_guidance"), p("concept_guidance")) if g)
    return _join(
        _JSON_ONLY,
        "CRITICAL - type field MUST be EXACTLY one of these values (no other values allowed):\n"
        + _type_lines(mode),
        "Output format (JSON):\n" + json.dumps(example, indent=2, ensure_ascii=False),
        guidance,
    )


def _join(*sections: str) -> str:
    return "\n\n".join(s.strip("\n") for s in sections if s.strip())


def build_init_prompt(user_prompt: str, mode: ModeConfig) -> str:
    p = mode.prompt
    return _join(
        p("system_identity"),
        _session_context(user_prompt),
        p("observer_role"),
        p("spatial_awareness"),
        p("recording_focus"),
        p("skip_guidance"),
        _observation_format(mode),
        p("footer"),
        p("header_memory_start"),
    )


def build_continuation_prompt(user_prompt: str, mode: ModeConfig) -> str:
    p = mode.prompt
    return _join(
        p("continuation_greeting"),
        _session_context(user_prompt),
        p("system_identity"),
        p("observer_role"),
        p("spatial_awareness"),
        p("recording_focus"),
        p("skip_guidance"),
        p("continuation_instruction"),
        _observation_format(mode),
        p("footer"),
        p("header_memory_continued"),
    )


def _as_structure(value: Any, tool_name: str | None) -> Any:
    """Tool payloads may arrive JSON-encoded; decode them for pretty printing."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        logger.debug("Tool payload is plain string, using as-is", tool_name=tool_name)
        return value


def build_observation_prompt(
    tool_name: str,
    tool_input: Any,
    tool_response: Any,
    occurred_at_ms: int,
    mode: ModeConfig,
    cwd: str | None = None,
) -> str:
    """Describe one tool use and restate the JSON output contract."""
    occurred_at = datetime.fromtimestamp(occurred_at_ms / 1000, tz=timezone.utc).isoformat()
    lines = [
        "<observed_from_primary_session>",
        f"  <what_happened>{tool_name}</what_happened>",
        f"  <occurred_at>{occurred_at}</occurred_at>",
    ]
    if cwd:
        lines.append(f"  <working_directory>{cwd}</working_directory>")
    params = json.dumps(_as_structure(tool_input, tool_name), indent=2, ensure_ascii=False, default=str)
    outcome = json.dumps(_as_structure(tool_response, tool_name), indent=2, ensure_ascii=False, default=str)
    lines.append(f"  <parameters>{params}</parameters>")
    lines.append(f"  <outcome>{outcome}</outcome>")
    lines.append("</observed_from_primary_session>")

    language = _LANGUAGE_RE.search(mode.prompt("footer"))
    language_line = f"\n{language.group(0)}" if language else ""
    fallback_type = mode.valid_types[0] if mode.valid_types else ""

    return (
        "\n".join(lines)
        + "\n\nIMPORTANT: Respond with ONLY a valid JSON object for the observation. No explanations, no markdown.\n"
        "OUTPUT FORMAT: Return compact single-line JSON without any line breaks, indentation, or extra whitespace.\n\n"
        "CRITICAL - type field MUST be EXACTLY one of these values:\n"
        f"{_type_lines(mode)}\n\n"
        f'{{"type":"{fallback_type}","title":"...","narrative":"...",'
        f'"files_read":[...],"files_modified":[...],"concepts":[...]}}'
        f"{language_line}"
    )


def build_summary_prompt(last_assistant_message: str, mode: ModeConfig, session_db_id: int | None = None) -> str:
    p = mode.prompt
    if not last_assistant_message:
        logger.error("Missing last_assistant_message for summary prompt", session_db_id=session_db_id)
    template = {
        "request": "Brief description of what the user requested",
        "investigated": "What files, code, or resources were examined",
        "learned": "Key insights or discoveries from this session",
        "completed": "What was accomplished or built",
        "next_steps": "Suggested follow-up actions",
        "notes": None,
    }
    return _join(
        _JSON_ONLY,
        f"{p('header_summary_checkpoint')}\n{p('summary_instruction')}",
        f"{p('summary_context_label')}\n{last_assistant_message}",
        "Required JSON format (respond with ONLY this structure, nothing else):\n"
        + json.dumps(template, indent=2),
        "CRITICAL: Your entire response must be a single valid JSON object. "
        "Do not include any text before or after the JSON.",
        p("summary_footer"),
    )
