from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union


T = TypeVar("T")


class FactCheckError(Exception):
    """Base class for request-level failures of the fact-check pipeline."""


class FactCheckValidationError(FactCheckError):
    """Client input is malformed; carries per-field messages."""

    def __init__(self, errors: dict[str, list[str]]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {', '.join(msgs)}" for field, msgs in errors.items()))

    @classmethod
    def for_field(cls, field: str, message: str) -> "FactCheckValidationError":
        return cls({field: [message]})


class UpstreamProviderError(FactCheckError):
    """The LLM provider answered with a failure status (or could not be reached)."""

    def __init__(self, status_code: Optional[int], body: str):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            super().__init__(f"LLM provider request failed: {body}")
        else:
            super().__init__(f"LLM provider returned status {status_code}")


class ResponseFormatError(FactCheckError):
    """The LLM envelope or its embedded JSON could not be parsed into the response schema."""


class QuotaExceeded(FactCheckError):
    def __init__(self, limit_tokens: int):
        self.limit_tokens = limit_tokens
        super().__init__(f"Trial quota exceeded ({limit_tokens} tokens).")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: FactCheckError


Result = Union[Ok[T], Err]
