"""Generation request schema and validation."""

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, StrictBool, ValidationError, field_validator

from src.exceptions import RequestValidationError

MAX_INPUT_LENGTH = 5000

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_TAG = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)


class Platform(StrEnum):
    N8N = "n8n"
    ZAPIER = "zapier"
    MAKE = "make"


class Complexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class ProviderChoice(StrEnum):
    """Provider names accepted from callers."""

    CLAUDE = "claude"
    OPENAI = "openai"

    @property
    def llm_provider(self) -> str:
        """Name of the completion provider backing this choice."""
        return "anthropic" if self is ProviderChoice.CLAUDE else "openai"


def sanitize_input(text: str) -> str:
    """Strip script/iframe tags, javascript: URLs and inline event handlers."""
    text = _SCRIPT_TAG.sub("", text)
    text = _IFRAME_TAG.sub("", text)
    text = _JS_SCHEME.sub("", text)
    text = _EVENT_HANDLER.sub("", text)
    return text.strip()


class GenerationRequest(BaseModel):
    """A natural-language workflow generation request."""

    input: str = Field(min_length=1, max_length=MAX_INPUT_LENGTH, description="Automation request text")
    platform: Platform = Platform.N8N
    complexity: Complexity = Complexity.SIMPLE
    error_handling: StrictBool = True
    optimization: float = Field(default=50, ge=0, le=100)
    provider: ProviderChoice = ProviderChoice.CLAUDE
    use_rag: StrictBool = True
    validate_output: StrictBool = True
    include_examples: StrictBool = True
    bypass_cache: StrictBool = False
    simplified_prompt: StrictBool = False
    max_attempts: int = Field(default=3, ge=1, le=5)

    @field_validator("input")
    @classmethod
    def validate_input(cls, v: str) -> str:
        """Reject blank input and strip markup."""
        if not v.strip():
            msg = "Input cannot be empty"
            raise ValueError(msg)
        cleaned = sanitize_input(v)
        if not cleaned:
            msg = "Input cannot be empty after sanitization"
            raise ValueError(msg)
        return cleaned


def parse_request(data: dict[str, Any]) -> GenerationRequest:
    """Validate a raw request payload.

    Raises:
        RequestValidationError: with one "field: message" string per problem
    """
    try:
        return GenerationRequest.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
            for err in e.errors()
        ]
        raise RequestValidationError("Invalid request", errors=errors) from e
