"""Tests for the Token Broker.

A fake clock stands in for time.time() so expiry and sliding refresh can
be exercised without waiting days.
"""

from __future__ import annotations

import pytest

from clio_bridge.errors import NoCredential
from clio_bridge.sessions import DAY_SECONDS, TokenBroker
from clio_bridge.store import InMemoryStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, days: float) -> None:
        self.now += days * DAY_SECONDS


def _make_broker(credential: str | None = "clio-token") -> tuple[TokenBroker, FakeClock, InMemoryStore]:  # type: ignore[type-arg]
    clock = FakeClock()
    store: InMemoryStore = InMemoryStore()  # type: ignore[type-arg]
    broker = TokenBroker(store=store, credential_provider=lambda: credential, clock=clock)
    return broker, clock, store


class TestCreate:
    def test_create_binds_upstream_credential(self) -> None:
        broker, clock, _ = _make_broker()

        session = broker.create()

        assert len(session.id) == 64  # 32 random bytes, hex encoded
        assert session.credential == "clio-token"
        assert session.created_at == clock.now
        assert session.expires_at == clock.now + 30 * DAY_SECONDS

    def test_create_with_explicit_credential(self) -> None:
        broker, _, _ = _make_broker(credential=None)

        session = broker.create("explicit-token")

        assert broker.resolve(session.id) == "explicit-token"

    def test_create_without_credential_raises(self) -> None:
        broker, _, _ = _make_broker(credential=None)

        with pytest.raises(NoCredential):
            broker.create()

    def test_ids_are_unique(self) -> None:
        broker, _, _ = _make_broker()

        ids = {broker.create().id for _ in range(50)}

        assert len(ids) == 50


class TestResolve:
    def test_resolve_right_after_create(self) -> None:
        broker, _, _ = _make_broker()
        session = broker.create()

        assert broker.resolve(session.id) == "clio-token"

    def test_resolve_unknown_id(self) -> None:
        broker, _, _ = _make_broker()

        assert broker.resolve("nope") is None

    def test_resolve_after_expiry_returns_none_and_deletes(self) -> None:
        broker, clock, store = _make_broker()
        session = broker.create()

        clock.advance(31)

        assert broker.resolve(session.id) is None
        assert session.id not in store

    def test_sliding_refresh_inside_threshold(self) -> None:
        """Less than 7 days left: extend to 30 days from now."""
        broker, clock, _ = _make_broker()
        session = broker.create()

        clock.advance(25)  # 5 days left
        broker.resolve(session.id)

        refreshed = broker.get(session.id)
        assert refreshed is not None
        assert refreshed.expires_at == clock.now + 30 * DAY_SECONDS

    def test_no_refresh_outside_threshold(self) -> None:
        """7 or more days left: expiry is unchanged."""
        broker, clock, _ = _make_broker()
        session = broker.create()
        original_expiry = session.expires_at

        clock.advance(23)  # exactly 7 days left
        broker.resolve(session.id)

        current = broker.get(session.id)
        assert current is not None
        assert current.expires_at == original_expiry

    def test_no_refresh_when_disabled(self) -> None:
        broker, clock, _ = _make_broker()
        session = broker.create()
        original_expiry = session.expires_at

        clock.advance(28)
        assert broker.resolve(session.id, auto_refresh=False) == "clio-token"

        current = broker.get(session.id)
        assert current is not None
        assert current.expires_at == original_expiry

    def test_expires_at_never_before_created_at(self) -> None:
        broker, clock, _ = _make_broker()
        session = broker.create()

        clock.advance(29)
        broker.resolve(session.id)

        current = broker.get(session.id)
        assert current is not None
        assert current.expires_at >= current.created_at


class TestRevokeAndSweep:
    def test_revoke(self) -> None:
        broker, _, _ = _make_broker()
        session = broker.create()

        revoked = broker.revoke(session.id)

        assert revoked is not None
        assert revoked.credential == "clio-token"
        assert broker.resolve(session.id) is None

    def test_revoke_unknown_is_noop(self) -> None:
        broker, _, _ = _make_broker()

        assert broker.revoke("missing") is None

    def test_sweep_removes_only_expired(self) -> None:
        broker, clock, store = _make_broker()
        old = broker.create()
        clock.advance(20)
        young = broker.create()

        clock.advance(11)  # old is 31 days old, young is 11
        removed = broker.sweep()

        assert removed == 1
        assert old.id not in store
        assert young.id in store


class TestGetOrCreate:
    def test_reuses_live_session(self) -> None:
        broker, _, _ = _make_broker()
        session = broker.create()

        assert broker.get_or_create(session.id).id == session.id

    def test_creates_when_missing_or_expired(self) -> None:
        broker, clock, _ = _make_broker()
        session = broker.create()
        clock.advance(31)

        replacement = broker.get_or_create(session.id)

        assert replacement.id != session.id
        assert broker.get_or_create(None).id not in {session.id, replacement.id}
