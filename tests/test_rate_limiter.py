"""Tests for the inbound rate limiter and caller identification."""

from __future__ import annotations

from clio_bridge.rate_limiter import InboundRateLimiter, identify_caller
from clio_bridge.store import InMemoryStore


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# --- identify_caller ---


def test_identity_prefers_query_session() -> None:
    identity = identify_caller(
        {"sessionId": "abc"},
        {"authorization": "Bearer session:def", "x-mcp-session-id": "ghi"},
        "10.0.0.1",
    )
    assert identity == "session:abc"


def test_identity_from_bearer_session_header() -> None:
    identity = identify_caller({}, {"authorization": "Bearer session:def"}, "10.0.0.1")
    assert identity == "session:def"


def test_identity_from_session_header() -> None:
    identity = identify_caller({}, {"authorization": "Bearer raw", "x-mcp-session-id": "ghi"})
    assert identity == "session:ghi"


def test_identity_falls_back_to_forwarded_ip() -> None:
    identity = identify_caller({}, {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "10.0.0.1")
    assert identity == "ip:203.0.113.7"


def test_identity_falls_back_to_peer_then_unknown() -> None:
    assert identify_caller({}, {"x-real-ip": "198.51.100.2"}, "10.0.0.1") == "ip:198.51.100.2"
    assert identify_caller({}, {}, "10.0.0.1") == "ip:10.0.0.1"
    assert identify_caller({}, {}) == "ip:unknown"


# --- InboundRateLimiter ---


def test_ten_allowed_eleventh_denied() -> None:
    clock = FakeClock()
    limiter = InboundRateLimiter(max_requests=10, window_seconds=60, clock=clock)

    decisions = [limiter.check("session:a") for _ in range(10)]
    assert all(d.allowed for d in decisions)
    assert decisions[-1].remaining == 0

    clock.now += 15
    denied = limiter.check("session:a")
    assert not denied.allowed
    assert denied.retry_after == 45
    assert denied.headers()["Retry-After"] == "45"


def test_window_resets_wholesale() -> None:
    clock = FakeClock()
    limiter = InboundRateLimiter(max_requests=10, window_seconds=60, clock=clock)
    for _ in range(11):
        limiter.check("ip:1.2.3.4")

    clock.now += 60
    decision = limiter.check("ip:1.2.3.4")

    assert decision.allowed
    assert decision.remaining == 9
    assert decision.reset_at == clock.now + 60


def test_window_is_not_sliding() -> None:
    """Requests late in a window do not push its end back."""
    clock = FakeClock()
    limiter = InboundRateLimiter(max_requests=2, window_seconds=60, clock=clock)

    first = limiter.check("k")
    clock.now += 50
    second = limiter.check("k")

    assert second.reset_at == first.reset_at


def test_identities_are_independent() -> None:
    limiter = InboundRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

    assert limiter.check("a").allowed
    assert not limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_headers_on_allowed_request() -> None:
    limiter = InboundRateLimiter(max_requests=10, window_seconds=60, clock=FakeClock(1_000.2))

    headers = limiter.check("a").headers()

    assert headers == {
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Remaining": "9",
        "X-RateLimit-Reset": "1061",
    }


def test_sweep_removes_elapsed_windows() -> None:
    clock = FakeClock()
    store: InMemoryStore = InMemoryStore()  # type: ignore[type-arg]
    limiter = InboundRateLimiter(max_requests=10, window_seconds=60, store=store, clock=clock)
    limiter.check("old")
    clock.now += 30
    limiter.check("new")

    clock.now += 31
    removed = limiter.sweep()

    assert removed == 1
    assert "old" not in store
    assert "new" in store
