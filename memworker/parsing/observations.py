"""Turn model JSON output into observation and summary records.

Parsing never raises on bad model output: a garbage turn degrades to "no
observations" (or no summary) plus a log record carrying the raw text, so a
long multi-turn session keeps going.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from memworker.logging import get_logger
from memworker.parsing.json_extract import JsonParseResult, preprocess_json_response, try_parse_json

logger = get_logger(__name__)

_LOG_PREVIEW_CHARS = 200

SUMMARY_FIELDS = ("request", "investigated", "learned", "completed", "next_steps", "notes")


@dataclass
class ParsedObservation:
    type: str
    title: str | None = None
    subtitle: str | None = None
    narrative: str | None = None
    facts: list[str] = field(default_factory=list)
    concepts: list[str] = field(default_factory=list)
    files_read: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)


@dataclass
class ParsedSummary:
    request: str | None = None
    investigated: str | None = None
    learned: str | None = None
    completed: str | None = None
    next_steps: str | None = None
    notes: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in SUMMARY_FIELDS if name != "notes")


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _log_parse_failure(
    message: str,
    raw_text: str,
    preprocessed: str,
    result: JsonParseResult,
    **context: Any,
) -> None:
    details: dict[str, Any] = {
        "error": result.error,
        "raw_text": raw_text,
        "text_length": len(raw_text),
    }
    trimmed = preprocessed.strip()
    if trimmed and trimmed != raw_text.strip():
        details["preprocessed_text"] = trimmed
    logger.error(message, **context, **details)


def _resolve_type(raw_type: Any, valid_types: Sequence[str], correlation_id: str | None) -> str:
    fallback = valid_types[0]
    if not isinstance(raw_type, str):
        logger.error(
            "Observation missing type field",
            fallback_type=fallback,
            correlation_id=correlation_id,
        )
        return fallback
    candidate = raw_type.strip()
    if candidate in valid_types:
        return candidate
    logger.error(
        "Invalid observation type",
        observation_type=raw_type,
        fallback_type=fallback,
        correlation_id=correlation_id,
    )
    return fallback


def _build_observation(
    raw: dict[str, Any],
    valid_types: Sequence[str],
    correlation_id: str | None,
) -> ParsedObservation:
    obs_type = _resolve_type(raw.get("type"), valid_types, correlation_id)

    concepts = _string_list(raw.get("concepts"))
    # Types and concepts are separate dimensions.
    cleaned_concepts = [c for c in concepts if c != obs_type]
    if len(cleaned_concepts) != len(concepts):
        logger.debug(
            "Removed observation type from concepts",
            observation_type=obs_type,
            correlation_id=correlation_id,
        )

    return ParsedObservation(
        type=obs_type,
        title=_optional_str(raw.get("title")),
        subtitle=_optional_str(raw.get("subtitle")),
        narrative=_optional_str(raw.get("narrative")),
        facts=_string_list(raw.get("facts")),
        concepts=cleaned_concepts,
        files_read=_string_list(raw.get("files_read")),
        files_modified=_string_list(raw.get("files_modified")),
    )


def parse_observations_json(
    text: str,
    valid_types: Sequence[str],
    correlation_id: str | None = None,
) -> list[ParsedObservation]:
    """Parse observations from a JSON-mode model response.

    Accepted shapes: a bare array of observations, ``{"observations": [...]}``,
    or one observation object (has ``type``). A response without any JSON, or
    ``{"skip": true}``, is an intentional skip. Types outside *valid_types*
    fall back to its first entry.

    Raises:
        ValueError: *valid_types* is empty (configuration error, not model output).
    """
    if not valid_types:
        raise ValueError("valid_types must contain at least one observation type")

    preprocessed = preprocess_json_response(text, allow_array=True).strip()

    if "{" not in preprocessed and "[" not in preprocessed:
        logger.debug(
            "Non-JSON response in JSON observation mode, treated as skip",
            correlation_id=correlation_id,
            text_length=len(text),
            text_preview=text[:_LOG_PREVIEW_CHARS],
        )
        return []

    result = try_parse_json(preprocessed)
    if not result.ok:
        _log_parse_failure(
            "Failed to parse JSON observations",
            text,
            preprocessed,
            result,
            correlation_id=correlation_id,
        )
        return []

    data = result.value
    if isinstance(data, dict) and data.get("skip") is True:
        logger.debug("JSON observation skipped via sentinel", correlation_id=correlation_id)
        return []

    if isinstance(data, list):
        raw_observations = data
    elif isinstance(data, dict) and isinstance(data.get("observations"), list):
        raw_observations = data["observations"]
    elif isinstance(data, dict) and data.get("type"):
        raw_observations = [data]
    else:
        logger.warning(
            "JSON response has no observations",
            correlation_id=correlation_id,
            keys=sorted(data) if isinstance(data, dict) else None,
            raw_text=text,
        )
        return []

    return [
        _build_observation(raw, valid_types, correlation_id)
        for raw in raw_observations
        if isinstance(raw, dict)
    ]


def parse_summary_json(text: str, session_id: int | str | None = None) -> ParsedSummary | None:
    """Parse a single summary object; ``None`` when the text holds none.

    A summary whose fields are all empty is still returned.
    """
    preprocessed = preprocess_json_response(text)
    result = try_parse_json(preprocessed)
    if not result.ok:
        _log_parse_failure(
            "Failed to parse JSON summary",
            text,
            preprocessed,
            result,
            session_id=session_id,
        )
        return None

    data = result.value
    if not isinstance(data, dict):
        _log_parse_failure(
            "JSON summary is not an object",
            text,
            preprocessed,
            JsonParseResult(ok=False, error=f"expected object, got {type(data).__name__}"),
            session_id=session_id,
        )
        return None

    summary = ParsedSummary(**{name: _optional_str(data.get(name)) for name in SUMMARY_FIELDS})
    if summary.is_empty:
        logger.warning(
            "JSON summary parsed but all fields are empty",
            session_id=session_id,
            keys=sorted(data),
        )
    return summary
