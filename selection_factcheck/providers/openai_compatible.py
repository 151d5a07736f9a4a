from ..config import Settings
from ..errors import FactCheckValidationError
from ..schemas import UserPreferences
from .base import ENDPOINT_FIELD, LlmProvider


class OpenAICompatibleProvider(LlmProvider):
    """OpenAI and any server speaking the OpenAI chat-completions protocol."""

    def __init__(self, name: str = "openai"):
        self.name = name

    def resolve_endpoint(self, preferences: UserPreferences, settings: Settings) -> str:
        endpoint = (preferences.endpoint or "").strip()
        if not endpoint and self.name == "openai":
            endpoint = settings.openai_default_endpoint
        if not endpoint:
            raise FactCheckValidationError.for_field(
                ENDPOINT_FIELD, "endpoint is required for custom provider"
            )

        base = endpoint.rstrip("/")
        if "/chat/completions" in base.lower():
            return base
        if base.lower().endswith("/v1"):
            return f"{base}/chat/completions"
        return f"{base}/v1/chat/completions"
