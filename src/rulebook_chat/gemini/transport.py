from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

_TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

ContentFactory = Callable[[], AsyncIterator[bytes]]


class TransientStatusError(Exception):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = str(exc) if isinstance(exc, TransientStatusError) else type(exc).__name__ if exc else "Unknown"
    logger.warning(f"Gemini transport: {reason}. Retrying in {wait:.0f}s (attempt {attempt})...")


def default_retry_kwargs(retry_count: int, backoff_seconds: float) -> dict:
    return {
        "retry": retry_if_exception_type((TransientStatusError, httpx.TransportError)),
        "wait": wait_exponential(multiplier=max(0.0, backoff_seconds)),
        "stop": stop_after_attempt(max(0, retry_count) + 1),
        "before_sleep": _on_retry,
        "reraise": True,
    }


class GeminiTransport:
    """HTTP access to the Gemini REST API with transient-failure retries.

    5xx/429 statuses and transport errors are retried with exponential backoff.
    When the last attempt still gets a transient status, that response is
    returned so the caller can report it.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout: float = 120.0,
        retry_count: int = 3,
        backoff_seconds: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"x-goog-api-key": api_key},
            timeout=timeout,
        )
        self._retry_count = max(0, retry_count)
        self._retry_kwargs = default_retry_kwargs(retry_count, backoff_seconds)

    async def __aenter__(self) -> GeminiTransport:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        content: bytes | ContentFactory | None = None,
        stream: bool = False,
        retry: bool = True,
    ) -> httpx.Response:
        """Send one logical request. ``content`` may be a factory so each retry gets a fresh body.

        With ``stream=True`` the caller owns the response and must close it.
        ``retry=False`` sends exactly once, for calls that create billable resources.
        """
        if not retry:
            return await self._send_once(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                content=content,
                stream=stream,
                final_attempt=True,
            )
        async for attempt in AsyncRetrying(**self._retry_kwargs):
            with attempt:
                response = await self._send_once(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=headers,
                    content=content,
                    stream=stream,
                    final_attempt=attempt.retry_state.attempt_number > self._retry_count,
                )
        return response

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        json: Any,
        params: dict[str, str] | None,
        headers: dict[str, str] | None,
        content: bytes | ContentFactory | None,
        stream: bool,
        final_attempt: bool,
    ) -> httpx.Response:
        request = self._client.build_request(
            method,
            url,
            json=json,
            params=params,
            headers=headers,
            content=content() if callable(content) else content,
        )
        response = await self._client.send(request, stream=stream)
        if response.status_code in _TRANSIENT_STATUS_CODES and not final_attempt:
            await response.aclose()
            raise TransientStatusError(response.status_code)
        return response


def json_body(response: httpx.Response) -> Any:
    """The decoded JSON body, or None when a 2xx response carries something else."""
    try:
        return response.json()
    except ValueError:
        logger.warning(f"Gemini returned a non-JSON body for {response.request.method} {response.request.url.path}")
        return None
