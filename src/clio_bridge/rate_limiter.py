"""Inbound rate limiter — throttles tool invocations per caller.

Runs before any credential is resolved or any Clio call is made, so a
misbehaving agent burns its own budget rather than the firm's Clio quota.

Concept — Fixed window:
    Each caller identity gets a counter and a window end time. The first
    request after the window ends starts a new window with the counter at
    zero. Unlike a sliding window, the whole budget comes back at once
    when the window ends.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from clio_bridge.config import (
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
    RATE_LIMIT_WINDOW_SECONDS,
)
from clio_bridge.redaction import safe_log
from clio_bridge.store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

SESSION_QUERY_PARAM = "sessionId"
SESSION_HEADER = "x-mcp-session-id"
SESSION_BEARER_PREFIX = "Bearer session:"


@dataclass
class RateLimitEntry:
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """The outcome of one check, with everything needed for the headers."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def identify_caller(
    query_params: Mapping[str, str],
    headers: Mapping[str, str],
    client_host: str | None = None,
) -> str:
    """Work out who is calling, most specific identity first.

    Order: sessionId query parameter, "Bearer session:<id>" authorization
    header, X-MCP-Session-ID header, then the source IP address.

    Args:
        query_params: The request's query parameters.
        headers: The request headers. Lookups are case-insensitive when
            given a case-insensitive mapping such as Starlette's Headers.
        client_host: The socket peer address, if known.
    """
    session_id = query_params.get(SESSION_QUERY_PARAM)
    if session_id:
        return f"session:{session_id}"

    auth_header = headers.get("authorization", "")
    if auth_header.startswith(SESSION_BEARER_PREFIX):
        return f"session:{auth_header[len(SESSION_BEARER_PREFIX):]}"

    session_id = headers.get(SESSION_HEADER)
    if session_id:
        return f"session:{session_id}"

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
    else:
        ip = headers.get("x-real-ip") or client_host or "unknown"
    return f"ip:{ip}"


class InboundRateLimiter:
    """Fixed-window request counter keyed by caller identity.

    Args:
        max_requests: Requests allowed per window.
        window_seconds: Window length.
        store: Where counters are kept. Defaults to process memory.
        clock: Returns the current Unix time. Injected by tests.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        store: KeyValueStore[RateLimitEntry] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._store: KeyValueStore[RateLimitEntry] = (
            store if store is not None else InMemoryStore()
        )
        self._clock = clock

    def check(self, identity: str) -> RateLimitDecision:
        """Count one request for identity and decide whether to allow it."""
        now = self._clock()
        entry = self._store.get(identity)
        if entry is None or entry.window_reset_at <= now:
            entry = RateLimitEntry(count=0, window_reset_at=now + self.window_seconds)

        entry.count += 1
        self._store.set(identity, entry)

        allowed = entry.count <= self.max_requests
        retry_after = None
        if not allowed:
            retry_after = max(1, math.ceil(entry.window_reset_at - now))
            safe_log(
                "warning",
                "[RateLimiter] Rate limit exceeded",
                {"identity_kind": identity.split(":", 1)[0], "retry_after": retry_after},
                logger=logger,
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            reset_at=entry.window_reset_at,
            retry_after=retry_after,
        )

    def sweep(self) -> int:
        """Delete counters whose window has already ended."""
        now = self._clock()
        return self._store.sweep(lambda entry: entry.window_reset_at <= now)

    async def run_sweeper(
        self, interval: float = RATE_LIMIT_SWEEP_INTERVAL_SECONDS
    ) -> None:
        """Sweep forever on a fixed interval. Run as a background task."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()
