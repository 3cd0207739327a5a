"""Resilient HTTP client for the Clio API v4.

This module provides the ClioClient class, which handles:
1. Bearer authentication with one bound access token
2. Retries with exponential backoff for 429, 5xx and timeouts
3. Tracking Clio's rate-limit headers across calls
4. Request/response logging with PII redaction

Concept — Retry policy:
    Every logical call gets at most CLIO_MAX_ATTEMPTS (3) attempts. Between
    attempts the client waits base * 2^attempt seconds (1s, 2s, ...), or
    the server's Retry-After value on a 429. Retries happen inline, so the
    wait is part of the caller's latency; there is no background queue.
    The policy runs on tenacity: 429 and 5xx responses are turned into an
    internal retryable signal, and timeouts are retried as they are.

    - 401: never retried, raises AuthenticationError
    - 429: retried, raises RateLimitExceeded when the budget runs out
    - 5xx and timeouts: retried, raises TransientRemoteError when exhausted
    - anything else: raises RemoteAPIError immediately

Usage:
    client = get_client(access_token)
    data = await client.get("/matters/123", params={"fields": "id,display_number"})
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

import httpx
from cachetools import LRUCache
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from clio_bridge.config import (
    CLIO_BASE_URL,
    CLIO_CLIENT_CACHE_SIZE,
    CLIO_MAX_ATTEMPTS,
    CLIO_RETRY_BASE_SECONDS,
    CLIO_TIMEOUT_SECONDS,
)
from clio_bridge.errors import (
    AuthenticationError,
    RateLimitExceeded,
    RemoteAPIError,
    TransientRemoteError,
)
from clio_bridge.redaction import redact, safe_log

logger = logging.getLogger(__name__)

# Before the first response we assume plenty of budget, resetting in a minute.
DEFAULT_RATE_LIMIT_REMAINING = 1000
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60.0


@dataclass
class RateLimitState:
    """The client's local estimate of Clio's rate-limit budget.

    Attributes:
        remaining: Requests left in the current remote window.
        reset_at: Unix time at which the remote window resets.
        updated_at: Unix time of the response the estimate came from, or
            None while it is still the initial default.
    """

    remaining: int
    reset_at: float
    updated_at: float | None = None


class _RetryableResponse(Exception):
    """A 429 or 5xx response that the retry policy may repeat."""

    def __init__(self, status_code: int, detail: str, retry_after: float | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        self.retry_after = retry_after
        super().__init__(f"HTTP {status_code}")


class ClioClient:
    """Async client for the Clio REST API bound to one access token.

    Attributes:
        base_url: The API root (e.g., "https://app.clio.com/api/v4").
        max_attempts: Total attempts per call, including the first.
        retry_base: Base delay in seconds for exponential backoff.
    """

    def __init__(
        self,
        token: str,
        base_url: str = CLIO_BASE_URL,
        timeout: float = CLIO_TIMEOUT_SECONDS,
        max_attempts: int = CLIO_MAX_ATTEMPTS,
        retry_base: float = CLIO_RETRY_BASE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.retry_base = retry_base
        self._token = token
        self._sleep = sleep
        self._clock = clock

        self._rate_limit = RateLimitState(
            remaining=DEFAULT_RATE_LIMIT_REMAINING,
            reset_at=clock() + DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
        )

        self._http = httpx.AsyncClient(timeout=httpx.Timeout(timeout))

        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def close_when_idle(self) -> None:
        """Close once no call is in flight on this client."""
        await self._idle.wait()
        await self.close()

    @property
    def rate_limit_state(self) -> RateLimitState:
        """A copy of the current rate-limit estimate."""
        return replace(self._rate_limit)

    async def get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated GET request to the Clio API.

        Args:
            endpoint: API path (e.g., "/matters/123/file_notes"), appended
                to base_url.
            params: Optional query parameters.

        Returns:
            The JSON response body, usually {"data": ..., "meta": {"paging": ...}}.

        Raises:
            AuthenticationError: On HTTP 401.
            RateLimitExceeded: On HTTP 429 after the retry budget.
            TransientRemoteError: On 5xx or timeout after the retry budget.
            RemoteAPIError: On any other failure.
        """
        return await self._request("GET", endpoint, params=params)

    def _backoff_delay(self, attempt: int) -> float:
        return self.retry_base * (2**attempt)

    def _update_rate_limit(self, headers: Mapping[str, str]) -> None:
        remaining = headers.get("x-ratelimit-remaining")
        reset = headers.get("x-ratelimit-reset")
        try:
            if remaining is not None:
                self._rate_limit.remaining = int(remaining)
                self._rate_limit.updated_at = self._clock()
            if reset is not None:
                self._rate_limit.reset_at = float(reset)
                self._rate_limit.updated_at = self._clock()
        except ValueError:
            safe_log(
                "warning",
                "[ClioClient] Ignoring malformed rate-limit headers",
                {"remaining": remaining, "reset": reset},
                logger=logger,
            )

    @staticmethod
    def _retry_after(headers: Mapping[str, str]) -> float | None:
        value = headers.get("retry-after")
        if value is None:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            # HTTP-date form; fall back to our own schedule.
            return None

    def _retry_delay(self, retry_state: RetryCallState) -> float:
        """Retry-After on a 429 that carries one, else base * 2^attempt."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _RetryableResponse) and exc.retry_after is not None:
            return exc.retry_after
        return self._backoff_delay(retry_state.attempt_number - 1)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _RetryableResponse):
            reason = "Rate limited" if exc.status_code == 429 else f"Server error {exc.status_code}"
        else:
            reason = "Timeout"
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        safe_log(
            "warning",
            f"[ClioClient] {reason}. Retrying in {delay:.1f}s",
            {"attempt": retry_state.attempt_number, "max_attempts": self.max_attempts},
            logger=logger,
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request, applying the retry policy inline.

        Query values are never logged, only their names.
        """
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }
        path = redact(endpoint)

        safe_log(
            "info",
            f"[ClioClient] Request: {method} {path}",
            {"params": sorted(params)} if params else None,
            logger=logger,
        )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._retry_delay,
            retry=retry_if_exception_type((_RetryableResponse, httpx.TimeoutException)),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        self._in_flight += 1
        self._idle.clear()
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._send(
                        method,
                        url,
                        path,
                        headers,
                        params,
                        retry_count=attempt.retry_state.attempt_number - 1,
                    )
        except _RetryableResponse as exc:
            if exc.status_code == 429:
                raise RateLimitExceeded(retry_after=exc.retry_after) from exc
            raise TransientRemoteError(status_code=exc.status_code, detail=exc.detail) from exc
        except httpx.TimeoutException as exc:
            raise TransientRemoteError(
                status_code=0,
                detail=f"Request to {path} timed out",
            ) from exc
        finally:
            self._in_flight -= 1
            if not self._in_flight:
                self._idle.set()
        return result

    async def _send(
        self,
        method: str,
        url: str,
        path: str,
        headers: dict[str, str],
        params: dict[str, Any] | None,
        retry_count: int,
    ) -> Any:
        """One attempt. Raises _RetryableResponse for 429 and 5xx."""
        started = time.monotonic()
        try:
            response = await self._http.request(
                method,
                url,
                headers=headers,
                params=params,
            )
        except httpx.TimeoutException:
            self._log_failure(method, path, "timeout", _elapsed_ms(started), retry_count)
            raise
        except httpx.HTTPError as exc:
            self._log_failure(method, path, type(exc).__name__, _elapsed_ms(started), retry_count)
            raise RemoteAPIError(
                status_code=0,
                detail=f"Request to {path} failed: {type(exc).__name__}",
            ) from exc

        duration_ms = _elapsed_ms(started)
        self._update_rate_limit(response.headers)
        status = response.status_code

        if status < 400:
            safe_log(
                "info",
                f"[ClioClient] Response: {status} {path}",
                {
                    "duration_ms": duration_ms,
                    "retry_count": retry_count,
                    "rate_limit_remaining": self._rate_limit.remaining,
                },
                logger=logger,
            )
            if not response.content:
                return {}
            return response.json()

        self._log_failure(method, path, status, duration_ms, retry_count)

        if status == 401:
            raise AuthenticationError()
        if status == 429:
            raise _RetryableResponse(status, response.text, self._retry_after(response.headers))
        if status >= 500:
            raise _RetryableResponse(status, response.text)
        raise RemoteAPIError(status_code=status, detail=response.text)

    def _log_failure(
        self,
        method: str,
        path: str,
        status: int | str,
        duration_ms: int,
        attempt: int,
    ) -> None:
        safe_log(
            "error",
            f"[ClioClient] Error: {method} {path} -> {status}",
            {
                "duration_ms": duration_ms,
                "retry_count": attempt,
                "rate_limit_remaining": self._rate_limit.remaining,
            },
            logger=logger,
        )


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)


# --- Client cache ---
# One client per credential, so the rate-limit estimate and the connection
# pool survive across inbound requests made with the same session. The
# cache is bounded: evicted clients are closed once their calls finish.


class _ClientCache(LRUCache):
    """LRU cache of clients that retires whatever it evicts."""

    def popitem(self) -> tuple[str, ClioClient]:
        credential, client = super().popitem()
        _retire(client)
        return credential, client


_clients = _ClientCache(maxsize=CLIO_CLIENT_CACHE_SIZE)
_retired: list[ClioClient] = []
_closing: set[asyncio.Task[None]] = set()


def _retire(client: ClioClient) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No loop to close it on here; close_clients() picks it up.
        _retired.append(client)
        return
    task = loop.create_task(client.close_when_idle())
    _closing.add(task)
    task.add_done_callback(_closing.discard)


def get_client(credential: str) -> ClioClient:
    """Get or create the ClioClient bound to a credential."""
    client = _clients.get(credential)
    if client is None:
        client = ClioClient(credential)
        _clients[credential] = client
    return client


def evict_client(credential: str) -> None:
    """Drop the cached client for a credential, e.g. on session revoke."""
    client = _clients.pop(credential, None)
    if client is not None:
        _retire(client)


async def close_clients() -> None:
    """Close every cached and evicted client. Called on application shutdown."""
    clients = [_clients.pop(credential) for credential in list(_clients)]
    clients += _retired
    _retired.clear()
    await asyncio.gather(*list(_closing))
    for client in clients:
        await client.close()
