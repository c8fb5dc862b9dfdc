"""Tests for observation / summary parsing of JSON-mode model output."""

import pytest
from structlog.testing import capture_logs

from memworker.parsing.observations import (
    ParsedSummary,
    parse_observations_json,
    parse_summary_json,
)

VALID_TYPES = ["discovery", "change", "bugfix"]


def _errors(logs):
    return [entry for entry in logs if entry["log_level"] == "error"]


# ---------------------------------------------------------------------------
# parse_observations_json
# ---------------------------------------------------------------------------

class TestParseObservations:
    def test_plain_text_is_skip(self):
        with capture_logs() as logs:
            result = parse_observations_json(
                "Empty status checks or requests without execution details are skipped.",
                VALID_TYPES,
                correlation_id="c-1",
            )
        assert result == []
        assert _errors(logs) == []

    def test_skip_sentinel(self):
        assert parse_observations_json('{"skip":true}', VALID_TYPES) == []

    def test_skip_must_be_true(self):
        result = parse_observations_json('{"skip": false, "type": "change", "title": "t"}', VALID_TYPES)
        assert len(result) == 1
        assert result[0].type == "change"

    def test_single_object(self):
        text = (
            '{"type":"discovery","title":"ok","subtitle":"s","narrative":"n",'
            '"facts":["f1"],"files_read":["a.py"],"files_modified":[],"concepts":["how-it-works"]}'
        )
        [obs] = parse_observations_json(text, VALID_TYPES)
        assert obs.type == "discovery"
        assert obs.title == "ok"
        assert obs.subtitle == "s"
        assert obs.narrative == "n"
        assert obs.facts == ["f1"]
        assert obs.files_read == ["a.py"]
        assert obs.files_modified == []
        assert obs.concepts == ["how-it-works"]

    def test_bare_array(self):
        text = '[{"type":"change","title":"a"},{"type":"bugfix","title":"b"}]'
        result = parse_observations_json(text, VALID_TYPES)
        assert [o.title for o in result] == ["a", "b"]
        assert [o.type for o in result] == ["change", "bugfix"]

    def test_observations_wrapper(self):
        text = '{"observations":[{"type":"change","title":"a"},"junk",{"type":"bugfix"}]}'
        result = parse_observations_json(text, VALID_TYPES)
        assert [o.type for o in result] == ["change", "bugfix"]

    def test_fenced_with_prose(self):
        text = 'Here is the observation:\n{"type":"bugfix","title":"fixed"}\nDone.'
        [obs] = parse_observations_json(text, VALID_TYPES)
        assert obs.title == "fixed"

    def test_invalid_type_falls_back_to_first(self):
        with capture_logs() as logs:
            [obs] = parse_observations_json('{"type":"gossip","title":"t"}', VALID_TYPES, correlation_id="c-2")
        assert obs.type == "discovery"
        errors = _errors(logs)
        assert errors[0]["event"] == "Invalid observation type"
        assert errors[0]["observation_type"] == "gossip"
        assert errors[0]["correlation_id"] == "c-2"

    def test_type_is_trimmed(self):
        [obs] = parse_observations_json('{"type":"  change ","title":"t"}', VALID_TYPES)
        assert obs.type == "change"

    def test_missing_type_in_wrapper_falls_back(self):
        with capture_logs() as logs:
            [obs] = parse_observations_json('{"observations":[{"title":"t"}]}', VALID_TYPES)
        assert obs.type == "discovery"
        assert _errors(logs)[0]["event"] == "Observation missing type field"

    def test_type_removed_from_concepts(self):
        [obs] = parse_observations_json(
            '{"type":"change","concepts":["change","pattern",42]}',
            VALID_TYPES,
        )
        assert obs.concepts == ["pattern"]

    def test_non_string_fields_dropped(self):
        [obs] = parse_observations_json(
            '{"type":"change","title":7,"facts":["ok",null,3],"files_read":"a.py"}',
            VALID_TYPES,
        )
        assert obs.title is None
        assert obs.facts == ["ok"]
        assert obs.files_read == []

    def test_parse_failure_logs_raw_text(self):
        raw = '```json\n{"type":}\n```'
        with capture_logs() as logs:
            result = parse_observations_json(raw, VALID_TYPES, correlation_id="c-3")
        assert result == []
        [entry] = _errors(logs)
        assert entry["event"] == "Failed to parse JSON observations"
        assert entry["raw_text"] == raw
        assert entry["preprocessed_text"] == '{"type":}'
        assert entry["text_length"] == len(raw)
        assert entry["error"]

    def test_object_without_observations(self):
        with capture_logs() as logs:
            result = parse_observations_json('{"note":"nothing here"}', VALID_TYPES)
        assert result == []
        assert any(e["event"] == "JSON response has no observations" for e in logs)

    def test_empty_whitelist_is_configuration_error(self):
        with pytest.raises(ValueError):
            parse_observations_json('{"type":"change"}', [])


# ---------------------------------------------------------------------------
# parse_summary_json
# ---------------------------------------------------------------------------

class TestParseSummary:
    def test_full_summary(self):
        text = (
            '```json\n{"request":"r","investigated":"i","learned":"l",'
            '"completed":"c","next_steps":"n","notes":null}\n```'
        )
        summary = parse_summary_json(text, session_id=5)
        assert summary == ParsedSummary(
            request="r", investigated="i", learned="l", completed="c", next_steps="n", notes=None
        )

    def test_non_string_values_become_none(self):
        summary = parse_summary_json('{"request":"r","learned":["x"],"notes":3}')
        assert summary is not None
        assert summary.request == "r"
        assert summary.learned is None
        assert summary.notes is None

    def test_all_empty_still_returned_with_warning(self):
        with capture_logs() as logs:
            summary = parse_summary_json('{"notes":"only notes"}', session_id=9)
        assert summary is not None
        assert summary.is_empty
        assert summary.notes == "only notes"
        warning = next(e for e in logs if e["log_level"] == "warning")
        assert warning["event"] == "JSON summary parsed but all fields are empty"
        assert warning["session_id"] == 9

    def test_unparsable_returns_none_and_logs_raw_text(self):
        raw = "I could not summarize this session."
        with capture_logs() as logs:
            assert parse_summary_json(raw, session_id=1) is None
        [entry] = _errors(logs)
        assert entry["raw_text"] == raw
        assert "preprocessed_text" not in entry

    def test_array_is_not_a_summary(self):
        assert parse_summary_json("[1, 2, 3]") is None
