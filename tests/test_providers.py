import litellm
import pytest

from planwright.config_loader import AssistantConfig
from planwright.errors import ConfigError, ProviderError
from planwright.providers import (
    AnthropicProvider,
    CustomProvider,
    OpenAIProvider,
    check_connection,
    create_provider,
)

MESSAGES = [
    {"role": "system", "content": "You are a planner."},
    {"role": "user", "content": "Move gym"},
    {"role": "assistant", "content": "{}"},
    {"role": "tool", "content": "done"},
]


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture
def calls(monkeypatch, completion):
    """Capture LiteLLM calls and answer with a canned reply."""
    captured = []

    def fake_completion(**kwargs):
        captured.append(kwargs)
        return completion('{"ok": true}')

    monkeypatch.setattr(litellm, "completion", fake_completion)
    return captured


def _fail_with(monkeypatch, exc):
    def fake_completion(**kwargs):
        raise exc
    monkeypatch.setattr(litellm, "completion", fake_completion)


def test_openai_request_shape(calls):
    provider = OpenAIProvider(AssistantConfig(api_key="sk-1", model="gpt-4o-mini"))
    response = provider.complete(MESSAGES)

    kwargs = calls[0]
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["api_key"] == "sk-1"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["temperature"] == 0.7
    assert kwargs["messages"] == MESSAGES
    assert "api_base" not in kwargs

    assert response.content == '{"ok": true}'
    assert response.usage.total_tokens == 20


def test_openai_endpoint_override(calls):
    config = AssistantConfig(api_key="sk-1", custom_endpoint="https://proxy.local/v1")
    OpenAIProvider(config).complete(MESSAGES)
    assert calls[0]["api_base"] == "https://proxy.local/v1"


def test_anthropic_splits_system_message():
    system, conversation = AnthropicProvider.split_messages(MESSAGES)
    assert system == "You are a planner."
    assert [m["role"] for m in conversation] == ["user", "assistant", "user"]


def test_anthropic_request_shape(calls):
    AnthropicProvider(AssistantConfig(provider="anthropic", api_key="sk-ant", model="claude-3-5-haiku-latest")).complete(MESSAGES)

    kwargs = calls[0]
    assert kwargs["max_tokens"] == 4096
    assert kwargs["temperature"] == 0.7
    assert "response_format" not in kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "You are a planner."}
    assert [m["role"] for m in kwargs["messages"][1:]] == ["user", "assistant", "user"]


def test_custom_provider_needs_endpoint():
    with pytest.raises(ConfigError):
        CustomProvider(AssistantConfig(provider="custom", api_key="k"))


def test_create_provider():
    assert isinstance(create_provider(AssistantConfig(provider="anthropic", api_key="k")), AnthropicProvider)
    custom = create_provider(AssistantConfig(provider="custom", api_key="k", custom_endpoint="http://localhost:11434/v1"))
    assert isinstance(custom, CustomProvider)
    with pytest.raises(ConfigError):
        create_provider(AssistantConfig(provider="gemini", api_key="k"))


def test_auth_failure_maps_to_readable_error(monkeypatch):
    _fail_with(monkeypatch, StatusError("401 Unauthorized", 401))

    with pytest.raises(ProviderError) as exc:
        OpenAIProvider(AssistantConfig(api_key="bad")).complete(MESSAGES)

    assert exc.value.status_code == 401
    assert exc.value.is_auth_error
    assert exc.value.provider == "openai"
    assert str(exc.value).startswith("Invalid API key")


def test_rate_limit_maps_to_readable_error(monkeypatch):
    _fail_with(monkeypatch, StatusError("429 Too Many Requests", 429))

    with pytest.raises(ProviderError) as exc:
        AnthropicProvider(AssistantConfig(provider="anthropic", api_key="k")).complete(MESSAGES)

    assert str(exc.value).startswith("Rate limit exceeded")
    assert not exc.value.is_auth_error


def test_network_failure_has_no_status(monkeypatch):
    _fail_with(monkeypatch, ConnectionError("connection reset"))

    with pytest.raises(ProviderError) as exc:
        OpenAIProvider(AssistantConfig(api_key="k")).complete(MESSAGES)

    assert exc.value.status_code is None
    assert "connection reset" in str(exc.value)


def test_check_connection(calls):
    assert check_connection(AssistantConfig(api_key="k")) == (True, None)


def test_check_connection_empty_reply(monkeypatch, completion):
    monkeypatch.setattr(litellm, "completion", lambda **kwargs: completion(""))
    assert check_connection(AssistantConfig(api_key="k")) == (False, "Empty response from AI")


def test_check_connection_failure(monkeypatch):
    _fail_with(monkeypatch, StatusError("401 Unauthorized", 401))
    ok, error = check_connection(AssistantConfig(api_key="bad"))
    assert not ok
    assert error.startswith("Invalid API key")
