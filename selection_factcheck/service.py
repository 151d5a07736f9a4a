"""
Selection fact-check orchestration.

Flow:
1. Resolve provider, endpoint and API key (caller's own key, or the metered trial key).
2. Retrieve sources linked from the selected text.
3. Call the LLM with the selection, page context and retrieved sources.
4. Parse the answer, overwrite server-owned metadata, normalize probabilities.
5. Charge trial usage when the request ran on the trial key.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import Settings
from .errors import Err, FactCheckError, FactCheckValidationError, Ok, Result
from .llm import TokenUsage, build_payload, chat_completions, parse_envelope, parse_fact_check_content
from .providers import apply_auth_headers, normalize_provider, requires_api_key, resolve_endpoint
from .retrieval import SourceRetriever
from .schemas import VERDICTS, CheckedSource, FactCheckRequest, FactCheckResponse, RetrievedSource
from .trial_quota import TrialQuotaMeter, TrialQuotaSnapshot

logger = logging.getLogger("fact_checking")

API_KEY_FIELD = "x-llm-api-key"
TRIAL_ID_FIELD = "x-trial-id"


@dataclass(frozen=True)
class ResolvedTarget:
    provider: str
    endpoint: str
    api_key: Optional[str]
    # Set only when the request runs on the shared trial key
    trial_id: Optional[str] = None


def clamp01(value: Optional[float]) -> float:
    if value is None or not math.isfinite(value):
        return 0.5
    return min(1.0, max(0.0, value))


def _is_usable(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def infer_truth_probability(verdict: Optional[str], confidence: float) -> float:
    normalized = (verdict or "").strip().upper()
    if normalized == "SUPPORTED":
        return confidence
    if normalized in ("DISPUTED", "MISLEADING"):
        return 1.0 - confidence
    return 0.5


def normalize_verdict(verdict: Optional[str]) -> str:
    normalized = (verdict or "").strip().upper()
    return normalized if normalized in VERDICTS else "UNCLEAR"


def normalize_probabilities(response: FactCheckResponse) -> None:
    for claim in response.claims:
        claim.confidence = clamp01(claim.confidence)
        truth = claim.truth_probability
        if not _is_usable(truth):
            truth = infer_truth_probability(claim.verdict, claim.confidence)
        claim.truth_probability = clamp01(truth)
        claim.verdict = normalize_verdict(claim.verdict)

    overall = response.overall_assessment.truth_probability
    if not _is_usable(overall):
        if response.claims:
            overall = sum(c.truth_probability for c in response.claims) / len(response.claims)
        else:
            overall = 0.5
    response.overall_assessment.truth_probability = clamp01(overall)


def fill_server_metadata(
    response: FactCheckResponse,
    request: FactCheckRequest,
    sources: list[RetrievedSource],
    usage: TokenUsage,
) -> None:
    """Overwrite fields the model must not control."""
    meta = response.meta
    meta.page_url = request.page_url
    meta.page_title = request.page_title
    meta.locale = request.locale
    meta.checked_sources = [
        CheckedSource(url=s.url, title=s.title, retrieval_status=s.retrieval_status) for s in sources
    ]
    meta.prompt_tokens = usage.prompt_tokens
    meta.completion_tokens = usage.completion_tokens
    meta.total_tokens = usage.total_tokens
    meta.trial_mode = None
    meta.trial_limit_tokens = None
    meta.trial_used_tokens = None
    meta.trial_remaining_tokens = None


def attach_trial_snapshot(response: FactCheckResponse, snapshot: TrialQuotaSnapshot) -> None:
    meta = response.meta
    meta.trial_mode = True
    meta.trial_limit_tokens = snapshot.limit_tokens
    meta.trial_used_tokens = snapshot.used_tokens
    meta.trial_remaining_tokens = snapshot.remaining_tokens


def consumed_tokens(usage: TokenUsage, selected_text: str) -> int:
    """Tokens to charge against a trial; a rough length-based estimate when upstream reports none."""
    if usage.total_tokens is not None:
        return usage.total_tokens
    if usage.prompt_tokens is not None or usage.completion_tokens is not None:
        return (usage.prompt_tokens or 0) + (usage.completion_tokens or 0)
    return max(1, len(selected_text) // 4)


class FactCheckService:
    def __init__(self, client: httpx.AsyncClient, settings: Settings, quota: TrialQuotaMeter):
        self.client = client
        self.settings = settings
        self.quota = quota
        self.retriever = SourceRetriever(client, settings)

    async def fact_check(
        self,
        request: FactCheckRequest,
        api_key: Optional[str],
        trial_id: Optional[str],
    ) -> Result[FactCheckResponse]:
        try:
            return Ok(await self._run(request, api_key, trial_id))
        except FactCheckError as e:
            return Err(e)

    def resolve_target(
        self,
        request: FactCheckRequest,
        api_key: Optional[str],
        trial_id: Optional[str],
    ) -> ResolvedTarget:
        preferences = request.user_preferences
        provider = normalize_provider(preferences.provider)
        endpoint = resolve_endpoint(preferences, provider, self.settings)
        key = (api_key or "").strip()

        if preferences.api_key_present and not key:
            raise FactCheckValidationError.for_field(
                API_KEY_FIELD, "apiKeyPresent=true but X-Llm-Api-Key header was empty"
            )
        if key:
            return ResolvedTarget(provider, endpoint, key)

        if self.quota.is_enabled_for(provider):
            trial = (trial_id or "").strip()
            if not trial:
                raise FactCheckValidationError.for_field(
                    TRIAL_ID_FIELD, "X-Trial-Id header is required when X-Llm-Api-Key is not sent"
                )
            self.quota.ensure_can_use(trial)
            return ResolvedTarget(provider, endpoint, self.quota.api_key(), trial)

        if requires_api_key(provider):
            raise FactCheckValidationError.for_field(API_KEY_FIELD, f"{provider} requires X-Llm-Api-Key header")
        return ResolvedTarget(provider, endpoint, None)

    async def _run(
        self,
        request: FactCheckRequest,
        api_key: Optional[str],
        trial_id: Optional[str],
    ) -> FactCheckResponse:
        target = self.resolve_target(request, api_key, trial_id)
        logger.info(
            "fact_check started provider=%s trial=%s selected_text_len=%s",
            target.provider,
            target.trial_id is not None,
            len(request.selected_text),
        )

        sources = await self.retriever.retrieve(request)

        headers: dict[str, str] = {}
        apply_auth_headers(headers, target.provider, target.api_key)
        body = await chat_completions(
            self.client,
            self.settings,
            endpoint=target.endpoint,
            headers=headers,
            payload=build_payload(request, sources),
        )

        usage, content = parse_envelope(body)
        response = parse_fact_check_content(content)
        fill_server_metadata(response, request, sources, usage)
        normalize_probabilities(response)

        if target.trial_id is not None:
            snapshot = self.quota.add_usage(target.trial_id, consumed_tokens(usage, request.selected_text))
            attach_trial_snapshot(response, snapshot)

        logger.info(
            "fact_check done: claims=%s sources=%s total_tokens=%s overall=%.2f",
            len(response.claims),
            len(sources),
            usage.total_tokens,
            response.overall_assessment.truth_probability,
        )
        return response
