"""Token Broker — opaque session ids bound to Clio credentials.

Agent clients cannot run the OAuth2 browser flow themselves, so after a
user authenticates once through the web interface we hand their agent an
opaque session id instead. The agent sends that id with every request and
the broker maps it back to the Clio access token.

Concept — Sliding expiration:
    Sessions live 30 days. Each time a session is resolved with less than
    7 days left, its expiry is pushed out to 30 days from now, so an agent
    that is used at least weekly never has to be reconfigured. Sessions
    that go unused simply lapse.

Expired sessions are rejected (and deleted) synchronously on lookup. The
periodic sweep only reclaims memory for sessions nobody looks up again.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

from clio_bridge.config import (
    CLIO_ACCESS_TOKEN,
    SESSION_REFRESH_THRESHOLD_DAYS,
    SESSION_SWEEP_INTERVAL_SECONDS,
    SESSION_TTL_DAYS,
)
from clio_bridge.errors import NoCredential
from clio_bridge.redaction import safe_log
from clio_bridge.store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


@dataclass
class Session:
    """A session id bound to a credential. Times are Unix timestamps."""

    id: str
    credential: str
    created_at: float
    expires_at: float


def _upstream_credential() -> str | None:
    return CLIO_ACCESS_TOKEN or None


class TokenBroker:
    """Creates, resolves and revokes sessions.

    Args:
        store: Where sessions are kept. Defaults to process memory.
        credential_provider: Returns the currently authenticated upstream
            credential, or None when nobody has authenticated.
        clock: Returns the current Unix time. Injected by tests.
        ttl_days: Lifetime of a new or refreshed session.
        refresh_threshold_days: Remaining lifetime below which a lookup
            extends the session.
    """

    def __init__(
        self,
        store: KeyValueStore[Session] | None = None,
        credential_provider: Callable[[], str | None] = _upstream_credential,
        clock: Callable[[], float] = time.time,
        ttl_days: float = SESSION_TTL_DAYS,
        refresh_threshold_days: float = SESSION_REFRESH_THRESHOLD_DAYS,
    ) -> None:
        self._store: KeyValueStore[Session] = store if store is not None else InMemoryStore()
        self._credential_provider = credential_provider
        self._clock = clock
        self.ttl = ttl_days * DAY_SECONDS
        self.refresh_threshold = refresh_threshold_days * DAY_SECONDS

    def create(self, credential: str | None = None) -> Session:
        """Bind a fresh 256-bit session id to a credential.

        Args:
            credential: The credential to bind. Defaults to whatever the
                credential provider reports as currently authenticated.

        Raises:
            NoCredential: If there is no credential to bind.
        """
        credential = credential or self._credential_provider()
        if not credential:
            raise NoCredential()

        now = self._clock()
        session = Session(
            id=secrets.token_hex(32),
            credential=credential,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._store.set(session.id, session)
        safe_log(
            "info",
            "[Sessions] Created session",
            {"session_prefix": session.id[:8]},
            logger=logger,
        )
        return session

    def get(self, session_id: str) -> Session | None:
        """Return a live session without refreshing it."""
        session = self._store.get(session_id)
        if session is None:
            return None
        if session.expires_at <= self._clock():
            self._store.delete(session_id)
            return None
        return session

    def resolve(self, session_id: str, auto_refresh: bool = True) -> str | None:
        """Return the credential bound to a session, or None.

        An expired session is deleted and reported as absent. With
        auto_refresh, a session inside the refresh threshold is extended
        to a full TTL from now.
        """
        session = self.get(session_id)
        if session is None:
            return None

        if auto_refresh:
            now = self._clock()
            if session.expires_at - now < self.refresh_threshold:
                session.expires_at = now + self.ttl
                self._store.set(session_id, session)
                safe_log(
                    "info",
                    "[Sessions] Auto-refreshed session",
                    {"session_prefix": session_id[:8], "expires_at": session.expires_at},
                    logger=logger,
                )

        return session.credential

    def get_or_create(self, session_id: str | None) -> Session:
        """Return the given session if it is live, else create a new one.

        Used for the cookie-bound browser session.

        Raises:
            NoCredential: If a new session is needed but nobody is authenticated.
        """
        if session_id and self.resolve(session_id) is not None:
            session = self.get(session_id)
            if session is not None:
                return session
        return self.create()

    def revoke(self, session_id: str) -> Session | None:
        """Remove a session. Returns it, or None for an unknown id."""
        session = self._store.get(session_id)
        self._store.delete(session_id)
        return session

    def sweep(self) -> int:
        """Delete every expired session. Returns how many were removed."""
        now = self._clock()
        removed = self._store.sweep(lambda session: session.expires_at <= now)
        if removed:
            safe_log("info", "[Sessions] Swept expired sessions", {"removed": removed}, logger=logger)
        return removed

    async def run_sweeper(self, interval: float = SESSION_SWEEP_INTERVAL_SECONDS) -> None:
        """Sweep forever on a fixed interval. Run as a background task."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()
