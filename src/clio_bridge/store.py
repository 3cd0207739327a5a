"""Key-value storage behind the session table and the inbound limiter.

Both tables live in process memory by default, which means every server
process has its own independent view. A deployment with several instances
swaps InMemoryStore for a shared store implementing the same four methods;
the Token Broker and the limiter only ever talk to KeyValueStore.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

V = TypeVar("V")


class KeyValueStore(Protocol[V]):
    """The storage contract used by TokenBroker and InboundRateLimiter."""

    def get(self, key: str) -> V | None: ...

    def set(self, key: str, value: V) -> None: ...

    def delete(self, key: str) -> None: ...

    def sweep(self, is_expired: Callable[[V], bool]) -> int:
        """Delete every entry for which is_expired(value) is true.

        Returns:
            The number of entries removed.
        """
        ...


class InMemoryStore(Generic[V]):
    """Dict-backed store. Safe under asyncio because nothing here awaits."""

    def __init__(self) -> None:
        self._data: dict[str, V] = {}

    def get(self, key: str) -> V | None:
        return self._data.get(key)

    def set(self, key: str, value: V) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def sweep(self, is_expired: Callable[[V], bool]) -> int:
        expired = [key for key, value in self._data.items() if is_expired(value)]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
