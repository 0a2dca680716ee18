"""
Google Gemini product-name provider.

Calls the generateContent endpoint with the product-extraction prompt. The
API key is sent as the ``key`` query parameter and is never logged.

Example:
    >>> provider = GeminiProvider("gemini-1.5-flash-002", api_key="AIza...")
    >>> await provider.extract_products("Nike", None, "Nike Air Max and Pegasus...")
    ['Air Max', 'Pegasus']
"""

import logging
from typing import Any

import httpx

from llm_answer_positions.enrichment.prompts import (
    PRODUCT_EXTRACTION_SYSTEM_PROMPT,
    build_product_extraction_prompt,
    parse_product_list,
)
from llm_answer_positions.enrichment.retry_config import (
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    create_retry_decorator,
)
from llm_answer_positions.exceptions import (
    EnrichmentProviderError,
    EnrichmentTimeoutError,
)

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

logger = logging.getLogger(__name__)


class GeminiProvider:
    """
    Product-name provider backed by the Gemini generateContent API.

    Attributes:
        name: Always "gemini"
        model_name: Gemini model identifier (e.g. "gemini-1.5-flash-002")
        api_key: Google API key (NEVER logged)
        base_url: API base URL
        temperature: Sampling temperature
        max_tokens: maxOutputTokens for the reply
    """

    name = "gemini"

    def __init__(
        self,
        model_name: str,
        api_key: str,
        base_url: str = GEMINI_API_BASE_URL,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ):
        if not model_name or model_name.isspace():
            raise ValueError("model_name cannot be empty")

        if not api_key or api_key.isspace():
            raise ValueError("api_key cannot be empty")

        self.model_name = model_name
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(f"Initialized gemini product provider for model: {model_name}")

    async def extract_products(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> list[Any]:
        """
        Ask Gemini for the brand's official products.

        Raises:
            EnrichmentProviderError: Permanent HTTP error, retries exhausted,
                or a reply that is not a JSON array
            EnrichmentTimeoutError: Request timed out on every attempt
        """
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {
                            "text": build_product_extraction_prompt(
                                brand_name, brand_metadata, answer_text
                            )
                        }
                    ],
                }
            ],
            "systemInstruction": {"parts": [{"text": PRODUCT_EXTRACTION_SYSTEM_PROMPT}]},
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }

        try:
            data = await self._post(payload)
        except httpx.TimeoutException as e:
            raise EnrichmentTimeoutError(
                f"gemini: request timed out (model={self.model_name})"
            ) from e
        except httpx.HTTPStatusError as e:
            raise EnrichmentProviderError(
                f"gemini: HTTP {e.response.status_code} after retries "
                f"(model={self.model_name})"
            ) from e
        except httpx.HTTPError as e:
            raise EnrichmentProviderError(
                f"gemini: request failed (model={self.model_name}): {e}"
            ) from e

        return parse_product_list(self._extract_text(data), self.name)

    @create_retry_decorator()
    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        api_url = f"{self.base_url}/models/{self.model_name}:generateContent"

        # API key travels as a query parameter (NEVER log params)
        params = {"key": self.api_key}

        logger.debug(f"Sending product extraction request: provider=gemini, model={self.model_name}")

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(
                    api_url,
                    json=payload,
                    params=params,
                    headers={"Content-Type": "application/json"},
                )

                if response.status_code in NO_RETRY_STATUS_CODES:
                    raise EnrichmentProviderError(
                        f"Gemini API error (non-retryable): "
                        f"status={response.status_code}, "
                        f"model={self.model_name}, "
                        f"detail={self._extract_error_detail(response)}"
                    )

                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"Gemini API HTTP error: "
                f"status={e.response.status_code}, "
                f"model={self.model_name}, "
                f"detail={self._extract_error_detail(e.response)}"
            )
            raise

        except (httpx.ConnectError, httpx.TimeoutException) as e:
            # httpx error strings may contain the request URL with the key
            logger.error(f"Gemini API request error: model={self.model_name}, error={type(e).__name__}")
            raise

        try:
            return response.json()
        except ValueError as e:
            raise EnrichmentProviderError(
                f"gemini: failed to parse response JSON: {e}"
            ) from e

    def _extract_text(self, data: dict[str, Any]) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise EnrichmentProviderError(
                f"No content in Gemini response (model={self.model_name})"
            ) from e

        if not isinstance(text, str) or not text.strip():
            raise EnrichmentProviderError(
                f"No content in Gemini response (model={self.model_name})"
            )

        return text

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
            if isinstance(error, dict):
                return str(error.get("message", "Unknown error"))
            return str(error)
        except (ValueError, AttributeError):
            return f"HTTP {response.status_code}"
