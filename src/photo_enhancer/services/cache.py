"""Simple cache abstractions."""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Cache(Protocol):
    """Cache interface for expiring counters."""

    def increment(self, key: str, ttl_seconds: float) -> tuple[int, float]:
        """Increment a counter, starting a new TTL window when absent.

        Returns the new count and the seconds left until the window expires.
        """


@dataclass
class _CounterEntry:
    count: int
    expires_at: datetime


@dataclass
class InMemoryCache(Cache):
    """In-memory counters with TTL expiry and a bounded entry count.

    Expired entries are purged on write once ``max_entries`` is reached;
    if the cache is still full, the entries closest to expiry are dropped.
    """

    max_entries: int = 10_000
    _entries: dict[str, _CounterEntry] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, key: str, ttl_seconds: float) -> tuple[int, float]:
        """Increment a counter; the window's expiry is fixed by the first hit."""
        now = datetime.now(tz=UTC)
        with self._lock:
            entry = self._live_entry(key, now)
            if entry is None:
                self._make_room(key, now)
                entry = _CounterEntry(
                    count=0, expires_at=now + timedelta(seconds=ttl_seconds)
                )
                self._entries[key] = entry
            entry.count += 1
            return entry.count, (entry.expires_at - now).total_seconds()

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            return self._purge(datetime.now(tz=UTC))

    def __len__(self) -> int:
        return len(self._entries)

    def _live_entry(self, key: str, now: datetime) -> _CounterEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry

    def _make_room(self, key: str, now: datetime) -> None:
        if key in self._entries or len(self._entries) < self.max_entries:
            return
        self._purge(now)
        overflow = len(self._entries) - self.max_entries + 1
        if overflow <= 0:
            return
        oldest = sorted(self._entries, key=lambda name: self._entries[name].expires_at)
        for name in oldest[:overflow]:
            del self._entries[name]

    def _purge(self, now: datetime) -> int:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)
