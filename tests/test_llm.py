"""Tests for the chat-completions client and LLM output parsing."""

import json
import math

import httpx
import pytest

from selection_factcheck.errors import ResponseFormatError, UpstreamProviderError
from selection_factcheck.llm import (
    TokenUsage,
    build_payload,
    chat_completions,
    extract_usage,
    parse_envelope,
    parse_fact_check_content,
    strictness_to_temperature,
    strip_code_fences,
)
from selection_factcheck.schemas import RetrievedSource

from .conftest import LLM_URL, RecordingTransport, chat_body, make_request, make_settings, model_answer


class TestPayload:
    @pytest.mark.parametrize("strictness,expected", [("high", 0.0), ("medium", 0.2), ("low", 0.4), (None, 0.2)])
    def test_strictness_temperature(self, strictness, expected):
        assert strictness_to_temperature(strictness) == expected

    def test_messages_and_format(self):
        source = RetrievedSource(
            url="https://example.org/", title="Example", excerpt="Some text", retrieval_status="fetched-direct"
        )
        payload = build_payload(make_request(strictness="HIGH", answerLanguage="German"), [source])

        assert payload["model"] == "gpt-4.1-mini"
        assert payload["temperature"] == 0.0
        assert payload["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in payload["messages"]] == ["system", "developer", "user"]
        user = payload["messages"][2]["content"]
        assert "The Eiffel Tower is 330 metres tall." in user
        assert "Write all explanatory text in German." in user
        assert "retrievalStatus: fetched-direct" in user

    def test_auto_language_uses_locale(self):
        user = build_payload(make_request(), [])["messages"][2]["content"]
        assert "Write all explanatory text in en-US." in user
        assert "providedSources:\n- (none)" in user


@pytest.mark.asyncio
class TestChatCompletions:
    async def test_returns_body_and_sends_headers(self):
        transport = RecordingTransport(lambda request: httpx.Response(200, json=chat_body("{}")))
        async with httpx.AsyncClient(transport=transport) as client:
            body = await chat_completions(
                client,
                make_settings(),
                endpoint=LLM_URL,
                headers={"Authorization": "Bearer sk-test"},
                payload={"model": "m", "messages": [{"role": "user", "content": "hi"}]},
            )

        assert json.loads(body)["id"] == "chatcmpl-test"
        sent = transport.requests[0]
        assert sent.method == "POST"
        assert sent.headers["authorization"] == "Bearer sk-test"
        assert sent.headers["content-type"] == "application/json"

    async def test_rate_limit_is_upstream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text='{"error": {"message": "Rate limit reached"}}')

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamProviderError) as exc:
                await chat_completions(
                    client,
                    make_settings(),
                    endpoint=LLM_URL,
                    headers={},
                    payload={"model": "m", "messages": [{"role": "user", "content": "hi"}]},
                )
        assert exc.value.status_code == 429
        assert "Rate limit reached" in exc.value.body

    async def test_transport_failure_is_upstream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamProviderError) as exc:
                await chat_completions(
                    client,
                    make_settings(),
                    endpoint=LLM_URL,
                    headers={},
                    payload={"model": "m", "messages": [{"role": "user", "content": "hi"}]},
                )
        assert exc.value.status_code is None


class TestEnvelope:
    def test_usage_and_content(self):
        body = json.dumps(chat_body("hello", {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}))
        usage, content = parse_envelope(body)
        assert usage == TokenUsage(10, 5, 15)
        assert content == "hello"

    def test_responses_style_usage(self):
        assert extract_usage({"usage": {"input_tokens": 7, "output_tokens": 3}}) == TokenUsage(7, 3, 10)

    def test_missing_usage(self):
        assert extract_usage({}) == TokenUsage()

    def test_content_parts_are_joined(self):
        body = {"choices": [{"message": {"content": [{"type": "text", "text": "{\"a\":"}, {"text": " 1}"}]}}]}
        assert parse_envelope(json.dumps(body))[1] == '{"a": 1}'

    @pytest.mark.parametrize("body", ["not json", "[]", '{"choices": []}', '{"choices": [{"message": {}}]}'])
    def test_malformed_envelope(self, body):
        with pytest.raises(ResponseFormatError):
            parse_envelope(body)


class TestContentParsing:
    def test_fenced_json_parses_like_plain(self):
        plain = json.dumps(model_answer())
        fenced = f"```json\n{plain}\n```"
        assert parse_fact_check_content(fenced) == parse_fact_check_content(plain)

    def test_fence_without_language_tag(self):
        assert strip_code_fences("```\n{}\n```") == "{}"
        assert strip_code_fences("  {}  ") == "{}"

    def test_keys_are_case_insensitive(self):
        content = json.dumps(
            {
                "CLAIMS": [{"Claim": "x", "VERDICT": "disputed", "truthprobability": 0.1, "Unknown": 1}],
                "overallassessment": {"Summary": "s", "KeyRisks": ["r"]},
            }
        )
        response = parse_fact_check_content(content)
        assert response.claims[0].claim == "x"
        assert response.claims[0].verdict == "disputed"
        assert response.claims[0].truth_probability == 0.1
        assert response.overall_assessment.key_risks == ["r"]

    def test_nulls_use_defaults(self):
        response = parse_fact_check_content('{"claims": null, "overallAssessment": {"summary": null}}')
        assert response.claims == []
        assert response.overall_assessment.summary == ""

    def test_nan_is_accepted_for_later_clamping(self):
        response = parse_fact_check_content('{"claims": [{"confidence": NaN}]}')
        assert math.isnan(response.claims[0].confidence)

    @pytest.mark.parametrize("content", ["not json at all", "[1, 2]", '{"claims": "nope"}'])
    def test_invalid_content(self, content):
        with pytest.raises(ResponseFormatError):
            parse_fact_check_content(content)
