from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


Strictness = Literal["low", "medium", "high"]
RetrievalStatus = Literal["fetched-direct", "fetched-via-proxy", "blocked", "failed"]
Verdict = Literal["SUPPORTED", "DISPUTED", "MISLEADING", "UNCLEAR"]

VERDICTS: tuple[str, ...] = ("SUPPORTED", "DISPUTED", "MISLEADING", "UNCLEAR")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserPreferences(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    provider: str = Field(default="openai", description="openai | azure_openai | custom")
    endpoint: str = Field(default="", description="Provider base URL or full chat-completions URL")
    model: str = Field(default="gpt-4.1-mini", min_length=1)
    api_key_present: bool = Field(default=False, description="Extension reports that it sent X-Llm-Api-Key")
    strictness: Strictness = Field(default="medium", description="low | medium | high")
    answer_language: str = Field(default="auto", description="Free-form language name or 'auto' for the page locale")
    max_sources: int = 5
    trusted_domains: list[str] = Field(default_factory=list)
    blocked_domains: list[str] = Field(default_factory=list)

    @field_validator("max_sources")
    @classmethod
    def max_sources_in_range(cls, v: int) -> int:
        if not 3 <= v <= 8:
            raise ValueError("maxSources must be between 3 and 8")
        return v

    @field_validator("strictness", mode="before")
    @classmethod
    def normalize_strictness(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("answer_language")
    @classmethod
    def answer_language_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("answerLanguage is required")
        return v.strip()


class FactCheckRequest(CamelModel):
    """Selected text plus page context, as sent by the browser extension."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    selected_text: str = Field(..., description="User-highlighted text to fact-check")
    selected_links: list[str] = Field(
        default_factory=list, description="Links the user explicitly selected along with the text"
    )
    page_url: str = ""
    page_title: str = ""
    locale: str = "en-US"
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)

    @field_validator("selected_text")
    @classmethod
    def selected_text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("selectedText is required")
        return v

    @field_validator("locale")
    @classmethod
    def locale_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("locale is required")
        return v.strip()


class RetrievedSource(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    url: str
    title: str
    excerpt: str
    retrieval_status: RetrievalStatus


class ModelOutput(CamelModel):
    """
    Base for response models that are parsed from LLM output.

    Keys match field names or camelCase aliases case-insensitively; unknown keys
    are dropped and JSON nulls fall back to the field default.
    """

    @model_validator(mode="before")
    @classmethod
    def match_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            lookup[name.lower()] = name
            if field.alias:
                lookup[field.alias.lower()] = name
        matched: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            name = lookup.get(str(key).lower())
            if name is not None:
                matched[name] = value
        return matched


class CheckedSource(ModelOutput):
    url: str = ""
    title: str = ""
    retrieval_status: str = "failed"


class FactCheckMeta(ModelOutput):
    page_url: str = ""
    page_title: str = ""
    locale: str = "en-US"
    checked_sources: list[CheckedSource] = Field(default_factory=list)
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    trial_mode: Optional[bool] = None
    trial_limit_tokens: Optional[int] = None
    trial_used_tokens: Optional[int] = None
    trial_remaining_tokens: Optional[int] = None


class FactCheckClaim(ModelOutput):
    claim: str = ""
    verdict: str = Field(default="UNCLEAR", description="SUPPORTED | DISPUTED | MISLEADING | UNCLEAR")
    confidence: float = 0.0
    truth_probability: Optional[float] = Field(default=None, description="Probability the claim is true, 0-1")
    short_explanation: str = ""
    search_queries: list[str] = Field(default_factory=list)
    evidence_needed: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class OverallAssessment(ModelOutput):
    summary: str = ""
    truth_probability: Optional[float] = None
    key_risks: list[str] = Field(default_factory=list)
    what_to_check_next: list[str] = Field(default_factory=list)


class FactCheckResponse(ModelOutput):
    """Claim-by-claim fact-check; meta fields are always filled in by the server."""

    meta: FactCheckMeta = Field(default_factory=FactCheckMeta)
    claims: list[FactCheckClaim] = Field(default_factory=list)
    overall_assessment: OverallAssessment = Field(default_factory=OverallAssessment)
