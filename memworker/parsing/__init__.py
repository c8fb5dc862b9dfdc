"""Parsers that recover observations and summaries from model output."""

from memworker.parsing.json_extract import extract_balanced_json, preprocess_json_response
from memworker.parsing.observations import (
    ParsedObservation,
    ParsedSummary,
    parse_observations_json,
    parse_summary_json,
)

__all__ = [
    "ParsedObservation",
    "ParsedSummary",
    "extract_balanced_json",
    "parse_observations_json",
    "parse_summary_json",
    "preprocess_json_response",
]
