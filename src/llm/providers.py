"""Completion providers.

A provider performs exactly one network call and reports failures as
ProviderError carrying the HTTP status, so the GenerationClient can decide
whether to retry.
"""

import logging
from typing import Any, Protocol

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from src.exceptions import ProviderError

logger = logging.getLogger(__name__)

ANTHROPIC_API_VERSION = "2023-06-01"


class TokenUsage(BaseModel):
    """Token counts reported by a provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class Completion(BaseModel):
    """Raw model output plus usage accounting."""

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str
    provider: str = "unknown"


class CompletionProvider(Protocol):
    """Anything that can turn a prompt into a Completion."""

    name: str

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Completion: ...


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)


class AnthropicProvider:
    """Anthropic Messages API over httpx."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.anthropic.com",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = client

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared AsyncClient."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=50),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt

        client = self._get_http_client()
        try:
            response = await client.post(
                f"{self.base_url}/v1/messages",
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_API_VERSION,
                    "content-type": "application/json",
                },
                json=body,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Anthropic request timed out after {self.timeout}s",
                provider=self.name,
                transient=True,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"Anthropic connection failed: {type(e).__name__}",
                provider=self.name,
                transient=True,
            ) from e

        if response.status_code != 200:
            detail = ""
            try:
                detail = response.json().get("error", {}).get("message", "")
            except ValueError:
                detail = response.text[:200]
            raise ProviderError(
                f"Anthropic API error {response.status_code}: {detail}".rstrip(": "),
                provider=self.name,
                status_code=response.status_code,
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )

        data = response.json()
        blocks = data.get("content") or []
        text = "".join(b.get("text", "") for b in blocks if b.get("type", "text") == "text")
        usage = data.get("usage") or {}
        return Completion(
            content=text,
            usage=TokenUsage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
            ),
            model=data.get("model", model),
            provider=self.name,
        )


class ChatModelProvider:
    """Adapts a langchain-core chat model to the provider contract.

    The wrapped model owns its model name. Temperature and max_tokens are
    passed as invocation kwargs, which override the model defaults per call.
    """

    def __init__(self, llm: BaseChatModel, *, name: str = "openai"):
        self.llm = llm
        self.name = name

    def _model_name(self, requested: str) -> str:
        return getattr(self.llm, "model_name", None) or getattr(self.llm, "model", None) or requested

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        try:
            result = await self.llm.ainvoke(messages, temperature=temperature, max_tokens=max_tokens)
        except Exception as e:
            status = getattr(e, "status_code", None)
            if status is None:
                status = getattr(getattr(e, "response", None), "status_code", None)
            retry_after = None
            headers = getattr(getattr(e, "response", None), "headers", None)
            if headers is not None:
                retry_after = _parse_retry_after(headers.get("retry-after"))
            raise ProviderError(
                f"{self.name} call failed: {e}",
                provider=self.name,
                status_code=status,
                retry_after=retry_after,
                transient=status is None,
            ) from e

        content = result.content if isinstance(result.content, str) else str(result.content)
        usage_meta = getattr(result, "usage_metadata", None) or {}
        return Completion(
            content=content,
            usage=TokenUsage(
                input_tokens=usage_meta.get("input_tokens", 0),
                output_tokens=usage_meta.get("output_tokens", 0),
            ),
            model=self._model_name(model),
            provider=self.name,
        )
