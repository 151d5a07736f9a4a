from ..config import Settings
from ..errors import FactCheckValidationError
from ..schemas import UserPreferences
from .base import ENDPOINT_FIELD, LlmProvider


class AzureOpenAIProvider(LlmProvider):
    """Azure deployments need the caller's full URL, including the api-version query."""

    name = "azure_openai"

    def resolve_endpoint(self, preferences: UserPreferences, settings: Settings) -> str:
        endpoint = (preferences.endpoint or "").strip()
        if not endpoint:
            raise FactCheckValidationError.for_field(
                ENDPOINT_FIELD,
                "endpoint is required for azure_openai and should include "
                "/chat/completions and api-version query parameter",
            )
        if "/chat/completions" not in endpoint.lower():
            raise FactCheckValidationError.for_field(
                ENDPOINT_FIELD,
                "azure_openai endpoint must be a full chat completions URL "
                "ending with /chat/completions?api-version=...",
            )
        return endpoint

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"api-key": api_key}
