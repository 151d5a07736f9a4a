"""
Chat completions client for OpenAI-compatible and Azure OpenAI endpoints.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .config import Settings
from .errors import ResponseFormatError, UpstreamProviderError
from .prompts import DEVELOPER_PROMPT, SYSTEM_PROMPT, build_user_prompt
from .schemas import FactCheckRequest, FactCheckResponse, RetrievedSource

logger = logging.getLogger("fact_checking")

STRICTNESS_TEMPERATURE = {"high": 0.0, "medium": 0.2, "low": 0.4}
DEFAULT_TEMPERATURE = 0.2

# Offending model output is logged up to this many characters
LOG_PREVIEW_CHARS = 1000


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


def strictness_to_temperature(strictness: Optional[str]) -> float:
    return STRICTNESS_TEMPERATURE.get((strictness or "").strip().lower(), DEFAULT_TEMPERATURE)


def build_payload(request: FactCheckRequest, sources: list[RetrievedSource]) -> dict[str, Any]:
    return {
        "model": request.user_preferences.model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "developer", "content": DEVELOPER_PROMPT},
            {"role": "user", "content": build_user_prompt(request, sources)},
        ],
        "temperature": strictness_to_temperature(request.user_preferences.strictness),
        "response_format": {"type": "json_object"},
    }


async def chat_completions(
    client: httpx.AsyncClient,
    settings: Settings,
    *,
    endpoint: str,
    headers: dict[str, str],
    payload: dict[str, Any],
) -> str:
    """
    POST the payload to the chat endpoint; return the raw response body.
    Non-2xx statuses and transport failures raise UpstreamProviderError.
    """
    logger.info(
        "LLM request url=%s model=%s user_message_len=%s",
        endpoint,
        payload.get("model"),
        len(payload["messages"][-1]["content"]),
    )
    try:
        resp = await client.post(
            endpoint,
            json=payload,
            headers={"Content-Type": "application/json", **headers},
            timeout=settings.llm_timeout_seconds,
        )
    except httpx.HTTPError as e:
        logger.warning("LLM request failed: %s", e)
        raise UpstreamProviderError(None, str(e) or type(e).__name__) from e

    body = resp.text
    if not resp.is_success:
        logger.warning("LLM HTTP error status=%s response=%s", resp.status_code, body[:500])
        raise UpstreamProviderError(resp.status_code, body)

    logger.info("LLM response status=%s body_len=%s", resp.status_code, len(body))
    return body


def parse_envelope(body: str) -> tuple[TokenUsage, str]:
    """Split a chat-completions response body into token usage and assistant content."""
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning("LLM envelope is not JSON: %s", body[:LOG_PREVIEW_CHARS])
        raise ResponseFormatError("LLM response was not valid JSON") from e
    if not isinstance(data, dict):
        raise ResponseFormatError("LLM response was not a JSON object")
    return extract_usage(data), extract_message_content(data)


def _read_int(source: dict[str, Any], name: str) -> Optional[int]:
    value = source.get(name)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def extract_usage(data: dict[str, Any]) -> TokenUsage:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return TokenUsage()

    prompt = _read_int(usage, "prompt_tokens")
    completion = _read_int(usage, "completion_tokens")
    total = _read_int(usage, "total_tokens")
    if prompt is None:
        prompt = _read_int(usage, "input_tokens")
    if completion is None:
        completion = _read_int(usage, "output_tokens")
    if total is None and (prompt is not None or completion is not None):
        total = (prompt or 0) + (completion or 0)
    return TokenUsage(prompt, completion, total)


def extract_message_content(data: dict[str, Any]) -> str:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ResponseFormatError("LLM response did not include choices")

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict) or "content" not in message:
        raise ResponseFormatError("LLM response did not include message content")

    content = message["content"]
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    raise ResponseFormatError("LLM message content was not a supported format")


def strip_code_fences(text: str) -> str:
    """Remove one ``` fence wrapping the whole text (with or without a language tag)."""
    trimmed = text.strip()
    if not trimmed.startswith("```") or not trimmed.endswith("```"):
        return trimmed
    lines = [line.rstrip("\r") for line in trimmed.split("\n")]
    if len(lines) < 3:
        return trimmed
    return "\n".join(lines[1:-1]).strip()


def parse_fact_check_content(content: str) -> FactCheckResponse:
    cleaned = strip_code_fences(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("LLM output was not valid JSON: %s", cleaned[:LOG_PREVIEW_CHARS])
        raise ResponseFormatError("LLM returned invalid JSON") from e

    if not isinstance(data, dict):
        logger.warning("LLM output was %s, expected object: %s", type(data).__name__, cleaned[:LOG_PREVIEW_CHARS])
        raise ResponseFormatError("LLM returned JSON that is not an object")

    try:
        return FactCheckResponse.model_validate(data)
    except ValidationError as e:
        logger.warning("LLM output did not match the response schema: %s", cleaned[:LOG_PREVIEW_CHARS])
        raise ResponseFormatError(f"LLM JSON did not match the response schema ({e.error_count()} errors)") from e
