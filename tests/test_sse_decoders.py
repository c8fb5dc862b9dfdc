"""Tests for SSE framing and the OpenAI / Gemini response normalizers."""

import json

from memworker.providers.gemini import (
    extract_response_text,
    parse_gemini_response,
    parse_gemini_sse_stream,
    parse_gemini_stream_response,
)
from memworker.providers.openai import parse_openai_response, parse_openai_sse_stream
from memworker.providers.sse import iter_sse_json, iter_sse_payloads, parse_whole_json


# ---------------------------------------------------------------------------
# SSE framing
# ---------------------------------------------------------------------------

class TestSseFraming:
    def test_multi_line_event_joined_with_newline(self):
        text = "data: {\ndata:   \"a\": 1\ndata: }\n\n"
        assert list(iter_sse_payloads(text)) == ['{\n  "a": 1\n}']

    def test_crlf_and_non_data_lines(self):
        text = ": keepalive\r\nevent: message\r\nid: 4\r\ndata: {\"a\": 1}\r\n\r\n"
        assert list(iter_sse_payloads(text)) == ['{"a": 1}']

    def test_data_without_space(self):
        assert list(iter_sse_payloads('data:{"a":1}\n\n')) == ['{"a":1}']

    def test_trailing_event_flushed_without_blank_line(self):
        assert list(iter_sse_payloads('data: {"a":1}\n\ndata: {"b":2}')) == ['{"a":1}', '{"b":2}']

    def test_empty_payloads_skipped(self):
        assert list(iter_sse_payloads("data: \n\ndata:\n\n")) == []

    def test_done_and_garbage_skipped(self):
        text = 'data: {"a":1}\n\ndata: not-json\n\ndata: [1]\n\ndata: [DONE]\n\n'
        assert list(iter_sse_json(text)) == [{"a": 1}]

    def test_unseparated_data_lines_parsed_one_by_one(self):
        text = 'data: {"a": 1}\ndata: {"b": 2}\ndata: [DONE]\n'
        assert list(iter_sse_json(text)) == [{"a": 1}, {"b": 2}]

    def test_parse_whole_json(self):
        assert parse_whole_json('  {"a": 1}  ') == {"a": 1}
        assert parse_whole_json('data: {"a": 1}') is None
        assert parse_whole_json("{broken") is None


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class TestOpenAIStream:
    def test_multi_line_payloads_and_usage(self):
        sse = "\n".join([
            'data: {"choices":[{"delta":{"content":"hel"}}]}',
            "",
            "data: {",
            'data:   "choices": [{"delta": {"content": "lo"}}],',
            'data:   "usage": {"total_tokens": 42}',
            "data: }",
            "",
            "data: [DONE]",
            "",
        ])
        response = parse_openai_sse_stream(sse)
        assert response.content == "hello"
        assert response.tokens_used == 42
        assert response.error is None

    def test_usage_only_final_chunk(self):
        sse = "\n".join([
            'data: {"choices":[{"delta":{"role":"assistant"}}]}',
            "",
            'data: {"choices":[{"delta":{"content":"{}"}}]}',
            "",
            'data: {"choices":[],"usage":{"total_tokens":9}}',
            "",
        ])
        response = parse_openai_sse_stream(sse)
        assert response.content == "{}"
        assert response.tokens_used == 9

    def test_falls_back_to_whole_json(self):
        body = json.dumps({
            "choices": [{"message": {"content": '{"type":"discovery"}'}}],
            "usage": {"total_tokens": 7},
        })
        response = parse_openai_sse_stream(body)
        assert response.content == '{"type":"discovery"}'
        assert response.tokens_used == 7

    def test_events_without_blank_separator(self):
        sse = (
            'data: {"choices":[{"delta":{"content":"a"}}]}\n'
            'data: {"choices":[{"delta":{"content":"b"}}]}\n'
        )
        assert parse_openai_sse_stream(sse).content == "ab"

    def test_error_event(self):
        sse = "\n".join([
            'data: {"error":{"code":"rate_limit","message":"Too many requests"}}',
            "",
            "data: [DONE]",
            "",
        ])
        response = parse_openai_sse_stream(sse)
        assert response.content == ""
        assert response.error == "rate_limit - Too many requests"

    def test_empty_body_is_empty_response(self):
        response = parse_openai_sse_stream("")
        assert response.is_empty
        assert response.error is None
        assert response.tokens_used is None


class TestOpenAIResponse:
    def test_message_content(self):
        response = parse_openai_response({
            "choices": [{"message": {"content": "ok"}}],
            "usage": {"total_tokens": 12},
        })
        assert response.content == "ok"
        assert response.tokens_used == 12

    def test_content_blocks(self):
        response = parse_openai_response({
            "choices": [{"message": {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}}],
        })
        assert response.content == "ab"

    def test_delta_shaped_non_stream_reply(self):
        response = parse_openai_response({"choices": [{"delta": {"content": "x"}}]})
        assert response.content == "x"

    def test_embedded_error_uses_type_when_no_code(self):
        response = parse_openai_response({"error": {"type": "invalid_request_error", "message": "bad model"}})
        assert response.error == "invalid_request_error - bad model"

    def test_no_choices(self):
        response = parse_openai_response({"choices": []})
        assert response.content == ""
        assert response.tokens_used is None


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class TestGeminiStream:
    def test_multi_line_events_keep_all_parts(self):
        sse = "\n".join([
            'data: {"candidates":[{"content":{"parts":[{"thought":true,"text":"THINK"}]}}]}',
            "",
            "data: {",
            'data: "candidates":[{"content":{"parts":[{"text":"{\\"type\\":\\"ok\\"}"}]}}],',
            'data: "usageMetadata":{"totalTokenCount":123}',
            "data: }",
            "",
        ])
        stream = parse_gemini_sse_stream(sse)
        assert stream.parts == [{"thought": True, "text": "THINK"}, {"text": '{"type":"ok"}'}]
        assert stream.tokens_used == 123

    def test_thinking_parts_excluded_from_text(self):
        sse = "\n".join([
            'data: {"candidates":[{"content":{"parts":[{"thought":true,"text":"THINK"}]}}]}',
            "",
            'data: {"candidates":[{"content":{"parts":[{"text":"{\\"a\\":","thoughtSignature":"sig"}]}}]}',
            "",
            'data: {"candidates":[{"content":{"parts":[{"text":"{\\"type\\":"},{"text":"\\"ok\\"}"}]}}]}',
            "",
        ])
        response = parse_gemini_stream_response(sse)
        assert response.content == '{"type":"ok"}'

    def test_falls_back_to_single_json_object(self):
        body = json.dumps({
            "candidates": [{"content": {"parts": [{"text": "hi"}]}}],
            "usageMetadata": {"totalTokenCount": 7},
        })
        stream = parse_gemini_sse_stream(body)
        assert stream.parts == [{"text": "hi"}]
        assert stream.tokens_used == 7

    def test_error_event(self):
        sse = 'data: {"error":{"code":429,"status":"RESOURCE_EXHAUSTED","message":"quota"}}\n\n'
        response = parse_gemini_stream_response(sse)
        assert response.error == "429 - quota"
        assert response.content == ""


class TestGeminiResponse:
    def test_non_stream_payload(self):
        response = parse_gemini_response({
            "candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}],
            "usageMetadata": {"totalTokenCount": 5},
        })
        assert response.content == "ab"
        assert response.tokens_used == 5

    def test_no_candidates_is_empty(self):
        response = parse_gemini_response({"candidates": []})
        assert response.is_empty
        assert response.error is None

    def test_extract_response_text_ignores_non_text(self):
        assert extract_response_text([{"inlineData": {}}, "junk", {"text": "x"}]) == "x"
        assert extract_response_text(None) == ""
