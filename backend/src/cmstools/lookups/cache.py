"""Lookup option caches.

Entries are immutable once stored and keyed by (connection, table, value
column, text column). Concurrent misses for one key may each run the query
and store the same result; the last write wins.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol


@dataclass(frozen=True)
class LookupOption:
    """One selectable value and its label. ``depth`` is non-zero in trees."""

    value: Any
    text: str
    depth: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "text": self.text, "depth": self.depth}


@dataclass(frozen=True)
class LookupKey:
    connection_id: int
    table: str
    value_column: str
    text_column: str
    tree: bool = False


class LookupCache(Protocol):
    """Storage for resolved lookup option lists."""

    def get(self, key: LookupKey) -> list[LookupOption] | None: ...

    def set(self, key: LookupKey, options: list[LookupOption]) -> None: ...

    def clear(self) -> None: ...


class MemoryLookupCache:
    """Process-local cache with a fixed time-to-live.

    Args:
        ttl_seconds: Entry lifetime
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, ttl_seconds: float = 20 * 60, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[LookupKey, tuple[float, tuple[LookupOption, ...]]] = {}

    def get(self, key: LookupKey) -> list[LookupOption] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, options = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return list(options)

    def set(self, key: LookupKey, options: list[LookupOption]) -> None:
        self._entries[key] = (self._clock() + self._ttl, tuple(options))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NullLookupCache:
    """Never stores anything; every resolution queries the database."""

    def get(self, key: LookupKey) -> list[LookupOption] | None:
        return None

    def set(self, key: LookupKey, options: list[LookupOption]) -> None:
        pass

    def clear(self) -> None:
        pass
