"""
Chat-completions provider for Cerebras and OpenAI.

Both APIs accept the same OpenAI-style chat completions payload, so one
provider class serves both; only the URL and the provider name differ.

Key features:
- Async HTTP client (httpx.AsyncClient)
- Retry on transient failures (429, 5xx, connect errors, timeouts)
- Fail fast on permanent errors (400, 401, 403, 404)
- Security: NEVER logs API keys

Example:
    >>> provider = OpenAICompatibleProvider(
    ...     name="cerebras",
    ...     model_name="qwen-3-235b-a22b-instruct-2507",
    ...     api_key="csk-...",
    ...     api_url=CEREBRAS_API_URL,
    ... )
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

CEREBRAS_API_URL = "https://api.cerebras.ai/v1/chat/completions"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

DEFAULT_API_URLS = {
    "cerebras": CEREBRAS_API_URL,
    "openai": OPENAI_API_URL,
}

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    """
    Product-name provider backed by an OpenAI-compatible chat completions API.

    Attributes:
        name: Provider name ("cerebras" or "openai")
        model_name: Model identifier
        api_key: API key (NEVER logged)
        api_url: Chat completions endpoint
        temperature: Sampling temperature
        max_tokens: Completion token cap

    Retry behavior:
        - Retries on: 429, 500, 502, 503, 504, connection errors, timeouts
        - Fails immediately on: 400, 401, 403, 404
        - After retries are exhausted httpx errors are converted to
          EnrichmentProviderError / EnrichmentTimeoutError
    """

    def __init__(
        self,
        name: str,
        model_name: str,
        api_key: str,
        api_url: str,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ):
        if not model_name or model_name.isspace():
            raise ValueError("model_name cannot be empty")

        if not api_key or api_key.isspace():
            raise ValueError("api_key cannot be empty")

        self.name = name
        self.model_name = model_name
        self.api_key = api_key
        self.api_url = api_url
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(f"Initialized {name} product provider for model: {model_name}")

    async def extract_products(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> list[Any]:
        """
        Ask the model for the brand's official products.

        Returns:
            Raw JSON array items from the model reply

        Raises:
            EnrichmentProviderError: Permanent HTTP error, retries exhausted,
                or a reply that is not a JSON array
            EnrichmentTimeoutError: Request timed out on every attempt
        """
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": PRODUCT_EXTRACTION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_product_extraction_prompt(
                        brand_name, brand_metadata, answer_text
                    ),
                },
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        try:
            data = await self._post(payload)
        except httpx.TimeoutException as e:
            raise EnrichmentTimeoutError(
                f"{self.name}: request timed out (model={self.model_name})"
            ) from e
        except httpx.HTTPStatusError as e:
            raise EnrichmentProviderError(
                f"{self.name}: HTTP {e.response.status_code} after retries "
                f"(model={self.model_name})"
            ) from e
        except httpx.HTTPError as e:
            raise EnrichmentProviderError(
                f"{self.name}: request failed (model={self.model_name}): {e}"
            ) from e

        content = self._extract_content(data)
        return parse_product_list(content, self.name)

    @create_retry_decorator()
    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        # Build headers (NEVER log api_key)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.debug(f"Sending product extraction request: provider={self.name}, model={self.model_name}")

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)

                if response.status_code in NO_RETRY_STATUS_CODES:
                    raise EnrichmentProviderError(
                        f"{self.name} API error (non-retryable): "
                        f"status={response.status_code}, "
                        f"model={self.model_name}, "
                        f"detail={self._extract_error_detail(response)}"
                    )

                # Retryable errors (429, 5xx) are retried by the decorator
                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"{self.name} API HTTP error: "
                f"status={e.response.status_code}, "
                f"model={self.model_name}, "
                f"detail={self._extract_error_detail(e.response)}"
            )
            raise

        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.error(f"{self.name} API request error: model={self.model_name}, error={e}")
            raise

        try:
            return response.json()
        except ValueError as e:
            raise EnrichmentProviderError(
                f"{self.name}: failed to parse response JSON: {e}"
            ) from e

    def _extract_content(self, data: dict[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise EnrichmentProviderError(
                f"No content in {self.name} response (model={self.model_name})"
            ) from e

        if not isinstance(content, str) or not content.strip():
            raise EnrichmentProviderError(
                f"No content in {self.name} response (model={self.model_name})"
            )

        return content

    def _extract_error_detail(self, response: httpx.Response) -> str:
        # Never include API keys: only the message from the response body
        try:
            error = response.json().get("error", {})
            if isinstance(error, dict):
                return str(error.get("message", "Unknown error"))
            return str(error)
        except (ValueError, AttributeError):
            return f"HTTP {response.status_code}"
