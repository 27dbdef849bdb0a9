"""Test unified LLM client functionality."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from app.core.llm_client import BaseLLMClient, OpenRouterClient
from app.core.unified_llm import LLMProvider, UnifiedLLMClient, create_llm_client_from_settings


@patch("app.core.unified_llm.GeminiClient")
def test_unified_llm_with_gemini(mock_gemini):
    """Gemini provider builds a Gemini client and no fallback."""
    client = UnifiedLLMClient(provider="gemini", api_key="test_gemini_key", model="gemini-2.0-flash")

    assert client.provider == LLMProvider.GEMINI
    assert client.fallback_client is None
    mock_gemini.assert_called_once_with(api_key="test_gemini_key", model="gemini-2.0-flash", temperature=0.7)


@patch("app.core.unified_llm.GeminiClient")
def test_unified_llm_with_fallback(mock_gemini):
    """OpenRouter provider with fallback keeps a Gemini client in reserve."""
    client = UnifiedLLMClient(
        provider="openrouter",
        api_key="test_openrouter_key",
        model="google/gemini-2.0-flash-001",
        fallback_to_gemini=True,
        gemini_api_key="test_gemini_key",
    )

    assert client.provider == LLMProvider.OPENROUTER
    assert isinstance(client.client, OpenRouterClient)
    assert client.fallback_client is mock_gemini.return_value


def test_fallback_requires_gemini_key():
    with pytest.raises(ConfigurationError):
        UnifiedLLMClient(
            provider="openrouter",
            api_key="test_openrouter_key",
            model="google/gemini-2.0-flash-001",
            fallback_to_gemini=True,
        )


@pytest.mark.asyncio
@patch("app.core.unified_llm.GeminiClient")
async def test_generate_falls_back_on_provider_error(mock_gemini):
    mock_gemini.return_value.generate = AsyncMock(return_value='{"ok": true}')
    client = UnifiedLLMClient(
        provider="openrouter",
        api_key="test_openrouter_key",
        model="google/gemini-2.0-flash-001",
        fallback_to_gemini=True,
        gemini_api_key="test_gemini_key",
    )
    client.client.generate = AsyncMock(side_effect=APIClientError("API Error 503"))

    result = await client.generate("prompt", 512)

    assert result == '{"ok": true}'
    mock_gemini.return_value.generate.assert_awaited_once_with("prompt", 512)


@pytest.mark.asyncio
async def test_generate_without_fallback_propagates():
    client = UnifiedLLMClient(provider="openrouter", api_key="key", model="model")
    client.client.generate = AsyncMock(side_effect=APIClientError("API Error 503"))

    with pytest.raises(APIClientError):
        await client.generate("prompt", 512)


@pytest.mark.asyncio
async def test_openrouter_returns_first_choice():
    client = OpenRouterClient(api_key="key", model="model")
    client.client.call_api = AsyncMock(
        return_value={"choices": [{"message": {"content": '{"segments": []}'}}]}
    )

    assert await client.generate("prompt", 256) == '{"segments": []}'
    payload = client.client.call_api.await_args.kwargs["payload"]
    assert payload["max_tokens"] == 256
    assert payload["messages"] == [{"role": "user", "content": "prompt"}]


@pytest.mark.asyncio
async def test_openrouter_without_choices_is_an_error():
    client = OpenRouterClient(api_key="key", model="model")
    client.client.call_api = AsyncMock(return_value={"error": "overloaded"})

    with pytest.raises(APIClientError):
        await client.generate("prompt", 256)


def _client_with_transport(handler):
    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(handler)
    return patch(
        "app.core.llm_client.httpx.AsyncClient",
        lambda timeout: real_client(transport=transport, timeout=timeout),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code,retryable", [(400, False), (429, True), (503, True)])
async def test_call_api_marks_retryable_statuses(status_code, retryable):
    client = BaseLLMClient(api_key="key", base_url="https://llm.test/v1/chat")

    with _client_with_transport(lambda request: httpx.Response(status_code, text="nope")):
        with pytest.raises(APIClientError) as exc_info:
            await client.call_api({"model": "m"})

    assert exc_info.value.retryable is retryable


@pytest.mark.asyncio
async def test_call_api_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = BaseLLMClient(api_key="key", base_url="https://llm.test/v1/chat", timeout=5)

    with _client_with_transport(handler):
        with pytest.raises(APITimeoutError):
            await client.call_api({"model": "m"})


@pytest.mark.asyncio
async def test_call_api_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"choices": []})

    client = BaseLLMClient(api_key="secret", base_url="https://llm.test/v1/chat")

    with _client_with_transport(handler):
        assert await client.call_api({"model": "m"}) == {"choices": []}

    assert seen["auth"] == "Bearer secret"


def test_settings_factory_requires_key():
    llm_settings = MagicMock(provider="openrouter", openrouter_api_key="")

    with patch("app.core.unified_llm.settings", MagicMock(llm=llm_settings)):
        with pytest.raises(ConfigurationError):
            create_llm_client_from_settings()


@patch("app.core.unified_llm.GeminiClient")
def test_settings_factory_builds_gemini_client(mock_gemini):
    llm_settings = MagicMock(provider="gemini", gemini_api_key="key", gemini_model="gemini-2.0-flash", temperature=0.2)

    with patch("app.core.unified_llm.settings", MagicMock(llm=llm_settings)):
        client = create_llm_client_from_settings()

    assert client.provider == LLMProvider.GEMINI
    mock_gemini.assert_called_once_with(api_key="key", model="gemini-2.0-flash", temperature=0.2)
