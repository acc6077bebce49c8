"""FlowForge exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from src.exceptions import ParseError, ProviderError

    try:
        workflow = extract_json(completion.content)
    except ParseError as e:
        logger.error("Unparseable model output (%s): %s", e.correlation_id, e.preview)
"""

import uuid
from typing import Any


class FlowForgeError(Exception):
    """Base exception for all FlowForge application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ParseError(FlowForgeError):
    """Model output could not be recovered into a JSON object or array."""

    def __init__(self, message: str, *, preview: str = "", **kwargs):
        self.preview = preview
        super().__init__(message, **kwargs)


class SchemaValidationError(FlowForgeError):
    """Workflow failed structural validation.

    Raised by ValidationReport.raise_for_errors. The generation pipeline
    returns issues instead of raising unless the caller asks for strict mode.
    """

    def __init__(self, message: str, *, issues: list[Any] | None = None, **kwargs):
        self.issues = issues or []
        super().__init__(message, **kwargs)


class ProviderError(FlowForgeError):
    """Errors from LLM provider operations.

    status_code is None for transport failures (connection refused, timeout).
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
        transient: bool = False,
        suggestions: list[str] | None = None,
        **kwargs,
    ):
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after
        self.transient = transient
        self.suggestions = suggestions or []
        super().__init__(message, **kwargs)

    @property
    def retryable(self) -> bool:
        """Whether the client may retry this failure."""
        if self.status_code is None:
            return self.transient
        return self.status_code == 429 or self.status_code >= 500


class RateLimitError(ProviderError):
    """Provider kept answering HTTP 429 after all retries."""

    pass


class CacheUnavailable(FlowForgeError):
    """Result cache backing store cannot be reached (degrade-only)."""

    pass


class RetrievalUnavailable(FlowForgeError):
    """Documentation search failed (degrade-only)."""

    pass


class RequestValidationError(FlowForgeError):
    """Generation request failed input validation."""

    def __init__(self, message: str, *, errors: list[str] | None = None, **kwargs):
        self.errors = errors or []
        super().__init__(message, **kwargs)


class GenerationTimeoutError(FlowForgeError):
    """The generation pipeline exceeded its deadline."""

    def __init__(self, message: str, *, timeout: float | None = None, **kwargs):
        self.timeout = timeout
        super().__init__(message, **kwargs)


class DALError(FlowForgeError):
    """Errors from data access layer operations."""

    pass


class ConfigurationError(FlowForgeError):
    """Errors from application configuration."""

    pass
