import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from ..config import Settings, get_settings
from ..errors import (
    FactCheckError,
    FactCheckValidationError,
    Ok,
    QuotaExceeded,
    ResponseFormatError,
    UpstreamProviderError,
)
from ..localization import quota_exceeded_message
from ..schemas import FactCheckRequest, FactCheckResponse
from ..service import FactCheckService
from ..trial_quota import TrialQuotaMeter

router = APIRouter(tags=["fact-check"])
logger = logging.getLogger("fact_checking")

VALIDATION_TITLE = "Invalid fact-check request"


def get_trial_quota(request: Request) -> TrialQuotaMeter:
    return request.app.state.trial_quota


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.llm_timeout_seconds) as client:
        yield client


def error_to_http(error: FactCheckError, locale: Optional[str]) -> HTTPException:
    if isinstance(error, FactCheckValidationError):
        logger.info("Fact-check request rejected: %s", error)
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"title": VALIDATION_TITLE, "errors": error.errors},
        )
    if isinstance(error, QuotaExceeded):
        title, detail = quota_exceeded_message(locale, error.limit_tokens)
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"title": title, "detail": detail, "limitTokens": error.limit_tokens},
        )
    if isinstance(error, UpstreamProviderError):
        logger.warning("LLM provider error status=%s", error.status_code)
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"title": "LLM provider error", "status": error.status_code, "body": error.body},
        )
    if isinstance(error, ResponseFormatError):
        logger.warning("LLM response format was invalid: %s", error)
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"title": "Invalid response from LLM provider", "detail": str(error)},
        )
    logger.error("Unhandled fact-check error: %s", error)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"title": "Fact-check failed", "detail": str(error)},
    )


@router.post("/fact-check/selection", response_model=FactCheckResponse)
async def check_selection(
    payload: FactCheckRequest,
    x_llm_api_key: Optional[str] = Header(None, alias="X-Llm-Api-Key"),
    x_trial_id: Optional[str] = Header(None, alias="X-Trial-Id"),
    settings: Settings = Depends(get_settings),
    quota: TrialQuotaMeter = Depends(get_trial_quota),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> FactCheckResponse:
    logger.info(
        "POST /fact-check/selection: provider=%s selected_text_len=%s api_key=%s trial_id=%s",
        payload.user_preferences.provider,
        len(payload.selected_text),
        "yes" if x_llm_api_key else "no",
        "yes" if x_trial_id else "no",
    )
    service = FactCheckService(client, settings, quota)
    result = await service.fact_check(payload, x_llm_api_key, x_trial_id)
    if isinstance(result, Ok):
        return result.value
    raise error_to_http(result.error, payload.locale)
