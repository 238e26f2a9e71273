from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger("titledoctor.providers")

# Transport-level trouble is the only thing worth another attempt.
RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.TransportError)


class HTTPProvider:
    """Shared httpx client with a per-call timeout and optional retries."""

    retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    def __init__(
        self,
        *,
        timeout: float = 20.0,
        attempts: int = 1,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            stop=stop_after_attempt(self.attempts),
            wait=self.retry_wait,
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("Retrying %s %s (attempt %d)", method, url.split("?", 1)[0], attempt.retry_state.attempt_number)
                return await self._client.request(method, url, timeout=self.timeout, **kwargs)
        raise RuntimeError("unreachable")  # pragma: no cover


def error_message(response: httpx.Response, default: str) -> str:
    """Best human-readable message from an upstream error body."""
    try:
        data = response.json()
    except ValueError:
        return f"{default} (HTTP {response.status_code})"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if data.get("message"):
            return str(data["message"])
    return f"{default} (HTTP {response.status_code})"
