import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Trial mode: lets users without their own key run on a shared, metered key
    trial_enabled: bool = False
    trial_provider: str = "openai"
    trial_api_key: Optional[str] = Field(default=None, validate_default=True)
    trial_token_limit: int = 20000

    # Empty list = allow browser-extension origins and localhost
    cors_allowed_origins: list[str] = []

    # LLM upstream
    llm_timeout_seconds: float = 120.0
    openai_default_endpoint: str = "https://api.openai.com"

    # Source retrieval
    retrieval_timeout_seconds: float = 12.0
    retrieval_proxy_base_url: str = "https://r.jina.ai/"
    retrieval_max_body_chars: int = 80_000
    retrieval_max_concurrency: int = 8
    retrieval_user_agent: str = "SelectionFactCheck/0.1"

    log_level: str = "INFO"

    class Config:
        env_prefix = "FACTCHECK_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("trial_api_key", mode="after")
    @classmethod
    def resolve_trial_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and v.strip():
            return v.strip()
        return (os.environ.get("TRIAL_API_KEY") or "").strip() or None


@lru_cache()
def get_settings() -> Settings:
    return Settings()
