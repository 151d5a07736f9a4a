from abc import ABC, abstractmethod
from typing import Optional

from ..config import Settings
from ..errors import FactCheckValidationError
from ..schemas import UserPreferences


PROVIDER_FIELD = "userPreferences.provider"
ENDPOINT_FIELD = "userPreferences.endpoint"

SUPPORTED_PROVIDERS = ("openai", "azure_openai", "custom")
KEYED_PROVIDERS = frozenset({"openai", "azure_openai"})


class LlmProvider(ABC):
    name: str

    @abstractmethod
    def resolve_endpoint(self, preferences: UserPreferences, settings: Settings) -> str:
        ...

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}


def normalize_provider(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise FactCheckValidationError.for_field(PROVIDER_FIELD, "provider is required")
    normalized = name.strip().lower()
    if normalized not in SUPPORTED_PROVIDERS:
        raise FactCheckValidationError.for_field(
            PROVIDER_FIELD, "provider must be one of: openai, azure_openai, custom"
        )
    return normalized


def requires_api_key(provider: str) -> bool:
    return provider in KEYED_PROVIDERS


def get_provider(provider: str) -> LlmProvider:
    from .azure_openai import AzureOpenAIProvider
    from .openai_compatible import OpenAICompatibleProvider

    if provider == "azure_openai":
        return AzureOpenAIProvider()
    if provider in ("openai", "custom"):
        return OpenAICompatibleProvider(provider)

    raise FactCheckValidationError.for_field(PROVIDER_FIELD, f"Unsupported provider: {provider}")


def resolve_endpoint(preferences: UserPreferences, provider: str, settings: Settings) -> str:
    return get_provider(provider).resolve_endpoint(preferences, settings)


def apply_auth_headers(headers: dict[str, str], provider: str, api_key: Optional[str]) -> None:
    """Add provider-specific auth to `headers` in place; blank keys leave it untouched."""
    if not api_key or not api_key.strip():
        return
    headers.update(get_provider(provider).auth_headers(api_key.strip()))
