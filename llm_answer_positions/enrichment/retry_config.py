"""
Retry configuration for product-name provider calls.

Centralized tenacity retry settings shared by every HTTP provider so that
Cerebras, OpenAI and Gemini back off the same way.

- Retry on network errors and server errors (429, 5xx)
- Fail fast on client errors (400, 401, 403, 404)
- Per-request timeout; the resolver additionally bounds the whole lookup

Example:
    >>> from llm_answer_positions.enrichment.retry_config import create_retry_decorator
    >>> @create_retry_decorator()
    ... async def call_provider():
    ...     # Will retry on 429, 5xx with exponential backoff
    ...     pass
"""

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Total attempts = 1 initial + 2 retries
MAX_ATTEMPTS = 3

# Backoff bounds (seconds)
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 10

# Permanent failures: bad request, bad key, forbidden, unknown model/endpoint
NO_RETRY_STATUS_CODES = frozenset([400, 401, 403, 404])

# Per-attempt HTTP timeout in seconds
REQUEST_TIMEOUT = 15.0


def create_retry_decorator():
    """
    Create a tenacity retry decorator for provider HTTP calls.

    Retries on httpx.HTTPStatusError, httpx.ConnectError and
    httpx.TimeoutException with exponential backoff, at most MAX_ATTEMPTS
    attempts, re-raising the last exception.

    Note:
        The caller checks NO_RETRY_STATUS_CODES and raises a non-httpx
        exception for them, so permanent errors are not retried.
    """
    return retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception_type(
            (
                httpx.HTTPStatusError,
                httpx.ConnectError,
                httpx.TimeoutException,
            )
        ),
        reraise=True,
    )
