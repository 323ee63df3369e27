"""Retrying JSON POST shared by the HTTP collaborators."""

import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

BACKOFF_BASE_SEC = 0.5
BACKOFF_FACTOR = 3


def is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status <= 599


def backoff_delay(attempt: int, base: float = BACKOFF_BASE_SEC) -> float:
    """Delay before retrying after ``attempt`` (1-based): 0.5s, 1.5s, 4.5s..."""
    return base * BACKOFF_FACTOR ** (attempt - 1)


async def post_json_with_retry(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: Optional[dict[str, str]] = None,
    max_attempts: int = 3,
    backoff_base: float = BACKOFF_BASE_SEC,
    label: str = "http",
) -> httpx.Response:
    """
    POST ``payload`` and return the final response.

    429 and 5xx responses and transport errors are retried with exponential
    backoff. A non-retryable error status is returned as is; the last
    transport error is re-raised when every attempt failed.
    """
    last_error: Optional[httpx.TransportError] = None
    response: Optional[httpx.Response] = None
    for attempt in range(1, max_attempts + 1):
        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.TransportError as exc:
            last_error = exc
            logger.warning("%s transport error (attempt %d): %s", label, attempt, exc)
        else:
            if response.is_success or not is_retryable_status(response.status_code):
                return response
            logger.warning(
                "%s returned %d (attempt %d)", label, response.status_code, attempt
            )
        if attempt < max_attempts:
            await asyncio.sleep(backoff_delay(attempt, backoff_base))

    if response is None and last_error is not None:
        raise last_error
    return response  # type: ignore[return-value]
