"""Unified LLM client factory and manager.

Provides a single ``generate(prompt, max_tokens)`` interface over the
configured provider, with an optional Gemini fallback.
"""

from enum import Enum
from typing import Optional, Protocol, Union

from app.core.config import settings
from app.core.exceptions import ConfigurationError, ProviderError
from app.core.llm_client import GeminiClient, OpenRouterClient
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class TextGenerator(Protocol):
    """Anything that turns a prompt into raw provider text."""

    async def generate(self, prompt: str, max_tokens: int) -> str:
        ...


class UnifiedLLMClient:
    """Unified LLM client that wraps different providers."""

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 60,
        temperature: float = 0.7,
        fallback_to_gemini: bool = False,
        gemini_api_key: Optional[str] = None,
        gemini_model: Optional[str] = None,
    ):
        """Initialize unified LLM client.

        Args:
            provider: LLM provider to use ("gemini" or "openrouter")
            api_key: API key for the primary provider
            model: Model name to use
            base_url: Optional base URL (for OpenRouter)
            timeout: Request timeout in seconds
            temperature: Sampling temperature
            fallback_to_gemini: If True, fallback to Gemini on primary provider failure
            gemini_api_key: Gemini API key (required if fallback_to_gemini=True)
            gemini_model: Gemini model name (for fallback)
        """
        self.provider = LLMProvider(provider)
        self.model = model
        self.fallback_client: Optional[GeminiClient] = None

        if self.provider == LLMProvider.GEMINI:
            self.client = GeminiClient(api_key=api_key, model=model, temperature=temperature)
            LOGGER.info(f"Initialized unified LLM with Gemini provider (model: {model})")
            return

        self.client = OpenRouterClient(
            api_key=api_key,
            model=model,
            base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
            timeout=timeout,
            temperature=temperature,
        )

        if fallback_to_gemini:
            if not gemini_api_key:
                raise ConfigurationError("gemini_api_key required when fallback_to_gemini=True")
            self.fallback_client = GeminiClient(
                api_key=gemini_api_key,
                model=gemini_model or "gemini-2.0-flash",
                temperature=temperature,
            )
            LOGGER.info(
                f"Initialized unified LLM with OpenRouter provider (model: {model}) "
                f"and Gemini fallback (model: {gemini_model})"
            )
        else:
            LOGGER.info(f"Initialized unified LLM with OpenRouter provider (model: {model})")

    async def generate(self, prompt: str, max_tokens: int) -> str:
        """Generate text using the configured provider.

        Args:
            prompt: Full prompt text
            max_tokens: Output token budget

        Returns:
            Raw generated text

        Raises:
            ProviderError: If the primary (and fallback, when enabled) call fails
        """
        try:
            return await self.client.generate(prompt, max_tokens)
        except ProviderError as e:
            if not self.fallback_client:
                raise
            LOGGER.warning(
                f"Primary provider ({self.provider.value}) failed, attempting Gemini fallback: {e}"
            )
            return await self.fallback_client.generate(prompt, max_tokens)


def create_llm_client_from_settings() -> UnifiedLLMClient:
    """Create a unified LLM client from the application settings.

    Returns:
        UnifiedLLMClient configured for ``settings.llm.provider``

    Raises:
        ConfigurationError: If the selected provider has no API key
    """
    llm = settings.llm
    provider = LLMProvider(llm.provider)

    if provider == LLMProvider.GEMINI:
        if not llm.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        return UnifiedLLMClient(
            provider=provider,
            api_key=llm.gemini_api_key,
            model=llm.gemini_model,
            temperature=llm.temperature,
        )

    if not llm.openrouter_api_key:
        raise ConfigurationError("OPENROUTER_API_KEY is not configured")
    return UnifiedLLMClient(
        provider=provider,
        api_key=llm.openrouter_api_key,
        model=llm.openrouter_model,
        base_url=llm.openrouter_api_url,
        timeout=llm.request_timeout,
        temperature=llm.temperature,
        fallback_to_gemini=llm.enable_fallback,
        gemini_api_key=llm.gemini_api_key,
        gemini_model=llm.gemini_model,
    )
