from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .models import CooldownEntry

Clock = Callable[[], float]


class CooldownTracker:
    """Per-worker throttle windows opened by rate-limit responses.

    Entries are never mutated. An entry stops counting once the clock reaches
    its expiry; ``prune_expired`` only bounds memory.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self.clock = clock
        self._entries: list[CooldownEntry] = []
        self._lock = threading.Lock()

    def record_throttle(self, worker: str, subject: str, seconds: int) -> CooldownEntry:
        if seconds <= 0:
            raise ValueError(f"cooldown must be positive, got {seconds}")
        entry = CooldownEntry(
            subject=subject,
            worker=worker,
            expires_at=self.clock() + seconds,
            remaining_seconds=int(seconds),
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def is_throttled(self, worker: str) -> bool:
        now = self.clock()
        with self._lock:
            return any(entry.worker == worker and entry.expires_at > now for entry in self._entries)

    def entries(self) -> list[CooldownEntry]:
        with self._lock:
            return list(self._entries)

    def active_entries(self) -> list[CooldownEntry]:
        now = self.clock()
        with self._lock:
            return [entry for entry in self._entries if entry.expires_at > now]

    def prune_expired(self) -> int:
        now = self.clock()
        with self._lock:
            kept = [entry for entry in self._entries if entry.expires_at > now]
            removed = len(self._entries) - len(kept)
            self._entries = kept
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
