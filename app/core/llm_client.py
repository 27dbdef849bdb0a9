"""Single-shot clients for the generative-text providers.

Each ``generate`` call performs exactly one request. Retrying is the job of
``app.core.retry.RetryPolicy``; keeping it out of the clients means a
provider call is never retried by two nested loops.
"""

from typing import Any, Dict, Optional

import httpx
from httpx import TimeoutException, HTTPStatusError
from google import genai
from google.genai import types

from app.core.exceptions import APIClientError, APITimeoutError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseLLMClient:
    """Base client for HTTP based LLM APIs.

    Handles request construction, timeout management and the mapping of
    transport failures onto the provider error hierarchy.
    """

    def __init__(self, api_key: str, base_url: str, timeout: int = 60):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.logger = LOGGER

    async def call_api(
        self,
        payload: Dict[str, Any],
        endpoint: str = "",
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded response.

        Args:
            payload: JSON payload
            endpoint: API endpoint (appended to base_url)
            headers: Additional headers

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: On a non-success status or transport failure.
                4xx responses other than 429 are marked non-retryable.
            APITimeoutError: If the request times out
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            default_headers.update(headers)

        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=default_headers, json=payload)
                response.raise_for_status()
                return response.json()

        except HTTPStatusError as e:
            status_code = e.response.status_code
            error_body = e.response.text
            self.logger.warning(
                f"API HTTP error {status_code}",
                extra={"url": url, "status_code": status_code, "error_body": error_body[:500]},
            )
            # Don't retry on client errors (4xx) unless it's rate limiting (429)
            retryable = not (400 <= status_code < 500 and status_code != 429)
            raise APIClientError(
                f"API Error {status_code}: {error_body[:200]}",
                original_error=e,
                retryable=retryable,
            ) from e

        except TimeoutException as e:
            self.logger.warning("API Timeout", extra={"url": url})
            raise APITimeoutError(f"API Timeout after {self.timeout}s", original_error=e) from e

        except (httpx.HTTPError, ValueError) as e:
            self.logger.warning("API transport error", extra={"url": url, "error": str(e)})
            raise APIClientError(f"API Error: {e}", original_error=e) from e


class GeminiClient:
    """Wrapper for Google Gemini API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.7,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            temperature: Sampling temperature
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature

        try:
            self.client = genai.Client(api_key=self.api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def generate(self, prompt: str, max_tokens: int) -> str:
        """Generate text for a prompt using the async Gemini API.

        Args:
            prompt: Full prompt text
            max_tokens: Output token budget

        Returns:
            Generated text response

        Raises:
            APIClientError: If generation fails
        """
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=max_tokens,
        )

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            LOGGER.warning(f"Gemini API error: {e}")
            raise APIClientError(f"Gemini generation failed: {e}", original_error=e) from e

        if not response.text:
            LOGGER.warning("Empty response from Gemini")
            return ""

        return response.text


class OpenRouterClient:
    """Wrapper for OpenRouter's chat completions API.

    Provides the same ``generate`` interface as GeminiClient.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 60,
        temperature: float = 0.7,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: Model name to use
            base_url: OpenRouter API base URL
            timeout: Request timeout in seconds
            temperature: Sampling temperature
        """
        self.model = model
        self.temperature = temperature
        self.client = BaseLLMClient(api_key=api_key, base_url=base_url, timeout=timeout)

        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    async def generate(self, prompt: str, max_tokens: int) -> str:
        """Generate text for a prompt.

        Args:
            prompt: Full prompt text
            max_tokens: Output token budget

        Returns:
            Generated text response

        Raises:
            APIClientError: If the call fails or the response has no choices
        """
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }

        response = await self.client.call_api(payload=payload)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:500]}")
            raise APIClientError("Invalid response format from OpenRouter")

        content = choices[0].get("message", {}).get("content", "")
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
            return ""

        return content
