"""
Shared fixtures for the selection fact-check tests.

Outbound HTTP (source pages, the text proxy, the LLM) is served by
httpx.MockTransport handlers, so nothing here touches the network.
"""

import json
from typing import Any, Callable, Optional

import httpx
import pytest

from selection_factcheck.config import Settings
from selection_factcheck.schemas import FactCheckRequest
from selection_factcheck.trial_quota import TrialQuotaMeter

LLM_URL = "https://api.openai.com/v1/chat/completions"

Handler = Callable[[httpx.Request], httpx.Response]


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"trial_enabled": False, "trial_api_key": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_request(selected_text: str = "The Eiffel Tower is 330 metres tall.", **preferences: Any) -> FactCheckRequest:
    return FactCheckRequest.model_validate(
        {
            "selectedText": selected_text,
            "pageUrl": "https://example.org/page",
            "pageTitle": "Example page",
            "locale": "en-US",
            "userPreferences": {"model": "gpt-4.1-mini", **preferences},
        }
    )


def model_answer(
    claims: Optional[list[dict[str, Any]]] = None,
    overall: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    return {
        "meta": {"pageUrl": "https://attacker.example/", "pageTitle": "spoofed", "locale": "xx"},
        "claims": claims
        if claims is not None
        else [
            {
                "claim": "The Eiffel Tower is 330 metres tall.",
                "verdict": "SUPPORTED",
                "confidence": 0.9,
                "shortExplanation": "Matches the official height.",
                "searchQueries": ["eiffel tower height"],
            }
        ],
        "overallAssessment": overall if overall is not None else {"summary": "Mostly accurate."},
    }


def chat_body(content: Any, usage: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    if not isinstance(content, str):
        content = json.dumps(content)
    body: dict[str, Any] = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    }
    if usage is not None:
        body["usage"] = usage
    return body


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Handler):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def trial_settings() -> Settings:
    return make_settings(trial_enabled=True, trial_api_key="trial-secret", trial_token_limit=150)


@pytest.fixture
def quota(settings: Settings) -> TrialQuotaMeter:
    return TrialQuotaMeter(settings)
