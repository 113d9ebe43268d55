"""
PLANWRIGHT Providers — Chat-Completion Backends

Every backend exposes the same `complete(messages)` contract and differs
only in how the request is shaped on the wire. Calls go through LiteLLM so
transport, auth headers and response decoding stay in one place.

Credentials come from the AssistantConfig handed to each provider; there is
no module-level client or key state.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any

import litellm
from loguru import logger
from pydantic import BaseModel

from planwright.config_loader import AssistantConfig
from planwright.errors import ConfigError, ProviderError
from planwright.prompts import CONNECTION_PROBE_MESSAGES

DEFAULT_TEMPERATURE = 0.7
ANTHROPIC_MAX_TOKENS = 4096

_STATUS_MESSAGES = {
    401: "Invalid API key. Please check your configuration.",
    403: "Invalid API key. Please check your configuration.",
    429: "Rate limit exceeded. Please try again later.",
}


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ProviderResponse(BaseModel):
    content: str
    model: str
    usage: Usage | None = None
    latency_ms: int = 0


def _status_of(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def to_provider_error(exc: Exception, provider: str) -> ProviderError:
    """Wrap a transport/backend failure, keeping the raw text next to a readable cause."""
    if isinstance(exc, ProviderError):
        return exc
    status = _status_of(exc)
    raw = str(exc) or exc.__class__.__name__
    friendly = _STATUS_MESSAGES.get(status)
    message = f"{friendly} ({raw})" if friendly else raw
    return ProviderError(message, provider=provider, status_code=status)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class BaseProvider(ABC):
    """
    Base class for provider backends.

    Subclasses define:
      - name: str — provider label carried by errors
      - build_kwargs() — the LiteLLM request for a message list
    """

    name: str = "unknown"

    def __init__(self, config: AssistantConfig):
        self.config = config
        litellm.suppress_debug_info = True

    @abstractmethod
    def build_kwargs(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        ...

    def complete(self, messages: list[dict[str, str]]) -> ProviderResponse:
        """Send one chat completion. Any failure surfaces as a ProviderError."""
        kwargs = self.build_kwargs(messages)
        start = time.monotonic()

        logger.debug(f"[ROUTER] {self.name} → {self.config.model} ({len(messages)} messages)")

        try:
            response = litellm.completion(**kwargs)
        except Exception as e:
            err = to_provider_error(e, self.name)
            logger.warning(f"[ROUTER] {self.name} failed (status={err.status_code}): {err}")
            raise err from e

        elapsed_ms = int((time.monotonic() - start) * 1000)

        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise ProviderError(f"Malformed response from {self.name}: {e}", provider=self.name) from e

        usage = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage:
            usage = Usage(
                prompt_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(raw_usage, "total_tokens", 0) or 0,
            )

        logger.debug(
            f"[ROUTER] {self.name} complete — "
            f"{usage.total_tokens if usage else '?'} tokens, {elapsed_ms}ms"
        )

        return ProviderResponse(
            content=content,
            model=getattr(response, "model", None) or self.config.model,
            usage=usage,
            latency_ms=elapsed_ms,
        )


class OpenAIProvider(BaseProvider):
    """Flat message list, JSON-typed reply."""

    name = "openai"

    def endpoint(self) -> str | None:
        return self.config.custom_endpoint or None

    def build_kwargs(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "custom_llm_provider": "openai",
            "api_key": self.config.api_key,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "response_format": {"type": "json_object"},
            "temperature": DEFAULT_TEMPERATURE,
        }
        endpoint = self.endpoint()
        if endpoint:
            kwargs["api_base"] = endpoint
        return kwargs


class AnthropicProvider(BaseProvider):
    """Leading system message travels separately; every other role becomes user or assistant."""

    name = "anthropic"

    @staticmethod
    def split_messages(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
        system = next((m["content"] for m in messages if m["role"] == "system"), None)
        conversation = [
            {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]
        return system, conversation

    def build_kwargs(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        system, conversation = self.split_messages(messages)
        wire_messages = conversation
        if system:
            wire_messages = [{"role": "system", "content": system}, *conversation]
        return {
            "model": self.config.model,
            "custom_llm_provider": "anthropic",
            "api_key": self.config.api_key,
            "messages": wire_messages,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
        }


class CustomProvider(OpenAIProvider):
    """OpenAI-compatible server at a caller-supplied endpoint (Ollama, LM Studio, LocalAI...)."""

    name = "custom"

    def __init__(self, config: AssistantConfig):
        if not config.custom_endpoint:
            raise ConfigError("Custom API requires custom_endpoint to be set")
        super().__init__(config)


_PROVIDERS: dict[str, type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "custom": CustomProvider,
}


def create_provider(config: AssistantConfig) -> BaseProvider:
    provider_cls = _PROVIDERS.get(config.provider)
    if not provider_cls:
        raise ConfigError(f"Unsupported AI provider: {config.provider}. Known: {list(_PROVIDERS)}")
    return provider_cls(config)


def check_connection(config: AssistantConfig) -> tuple[bool, str | None]:
    """Send a tiny JSON probe. Any non-empty reply counts as a working connection."""
    try:
        response = create_provider(config).complete(CONNECTION_PROBE_MESSAGES)
    except (ProviderError, ConfigError) as e:
        return False, str(e) or "Connection failed"

    if not response.content:
        return False, "Empty response from AI"

    try:
        parsed = json.loads(response.content)
        logger.debug(f"[ROUTER] Probe reply: {parsed}")
    except json.JSONDecodeError:
        # Some local servers ignore json mode for tiny prompts; the connection still works.
        logger.debug("[ROUTER] Probe reply was not JSON")
    return True, None

