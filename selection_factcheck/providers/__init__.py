from .base import (  # noqa: F401
    LlmProvider,
    apply_auth_headers,
    get_provider,
    normalize_provider,
    requires_api_key,
    resolve_endpoint,
)
from .azure_openai import AzureOpenAIProvider  # noqa: F401
from .openai_compatible import OpenAICompatibleProvider  # noqa: F401
