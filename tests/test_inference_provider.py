from types import SimpleNamespace

import anthropic
import httpx
import pytest

from packages.domain.classification.errors import InferenceUnavailable, InvalidInferenceOutput
from packages.domain.classification.inference import AnthropicInferenceProvider, PromptSpec
from packages.domain.classification.schemas import InferenceOutput

PROMPT = PromptSpec(name="record_hs_classification", system="system", prompt="PRODUCT NAME:\nponsel")
REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


class StubMessages:
    def __init__(self, result):
        self.result = result
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def provider_returning(result, **kwargs):
    provider = AnthropicInferenceProvider(api_key="test-key", **kwargs)
    provider.client = SimpleNamespace(messages=StubMessages(result))
    return provider


def message(*blocks):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=120, output_tokens=40),
        stop_reason="tool_use",
    )


def status_error(cls, status_code, headers=None):
    response = httpx.Response(status_code, headers=headers or {}, request=REQUEST)
    return cls(message=f"HTTP {status_code}", response=response, body=None)


async def test_returns_forced_tool_input():
    payload = {"analysis_text": "Telepon pintar.", "code_and_description": "851713 - Telepon pintar"}
    provider = provider_returning(message(
        SimpleNamespace(type="text", text="thinking"),
        SimpleNamespace(type="tool_use", name=PROMPT.name, input=payload),
    ))

    assert await provider.generate(PROMPT, InferenceOutput) == payload

    sent = provider.client.messages.kwargs
    assert sent["tool_choice"] == {"type": "tool", "name": PROMPT.name}
    assert sent["tools"][0]["input_schema"] == InferenceOutput.model_json_schema()
    assert sent["system"] == "system"
    assert sent["temperature"] == 0.0


async def test_missing_tool_output_is_invalid():
    provider = provider_returning(message(SimpleNamespace(type="text", text="847130")))

    with pytest.raises(InvalidInferenceOutput):
        await provider.generate(PROMPT, InferenceOutput)


async def test_rate_limit_uses_retry_after_header():
    provider = provider_returning(status_error(anthropic.RateLimitError, 429, {"retry-after": "17"}))

    with pytest.raises(InferenceUnavailable) as exc_info:
        await provider.generate(PROMPT, InferenceOutput)

    assert exc_info.value.quota_exhausted
    assert exc_info.value.retry_after_seconds == 17


async def test_rate_limit_without_header_uses_cooldown():
    provider = provider_returning(status_error(anthropic.RateLimitError, 429), quota_cooldown_seconds=60)

    with pytest.raises(InferenceUnavailable) as exc_info:
        await provider.generate(PROMPT, InferenceOutput)

    assert exc_info.value.retry_after_seconds == 60


@pytest.mark.parametrize("error", [
    status_error(anthropic.InternalServerError, 500),
    status_error(anthropic.AuthenticationError, 401),
    anthropic.APIConnectionError(request=REQUEST),
    anthropic.APITimeoutError(request=REQUEST),
])
async def test_transport_failures_are_unavailable(error):
    provider = provider_returning(error)

    with pytest.raises(InferenceUnavailable) as exc_info:
        await provider.generate(PROMPT, InferenceOutput)

    assert not exc_info.value.quota_exhausted
    assert exc_info.value.error_code == "inference_unavailable"


async def test_missing_api_key():
    provider = AnthropicInferenceProvider(api_key=None)

    assert not provider.configured
    with pytest.raises(InferenceUnavailable):
        await provider.generate(PROMPT, InferenceOutput)
