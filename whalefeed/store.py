"""Bounded, newest-first buffer of recent whale events.

Single writer (the block monitor), any number of readers. Everything runs on
one event loop and none of these methods await, so readers always see a
consistent sequence without locking.
"""

from __future__ import annotations

from collections import deque

from whalefeed.models import AssetKind, WhaleEvent

DEFAULT_CAPACITY = 100

# Symbols that select native transfers in filter_by_asset()
NATIVE_ALIASES = {"ETH", "NATIVE"}


class EventStore:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._events: deque[WhaleEvent] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def append(self, event: WhaleEvent) -> None:
        """Insert at the front; the oldest event falls off the back at capacity."""
        self._events.appendleft(event)

    def snapshot(self) -> list[WhaleEvent]:
        return list(self._events)

    def filter_by_asset(self, symbol: str) -> list[WhaleEvent]:
        wanted = symbol.upper()
        if wanted in NATIVE_ALIASES:
            return [e for e in self._events if e.kind is AssetKind.NATIVE]
        return [
            e
            for e in self._events
            if e.kind is AssetKind.TOKEN and e.asset is not None
            and e.asset.symbol.upper() == wanted
        ]

    def __len__(self) -> int:
        return len(self._events)
