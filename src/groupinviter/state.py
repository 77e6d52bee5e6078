from __future__ import annotations

import threading
import time
from typing import Any

from .cooldowns import Clock, CooldownTracker
from .models import CooldownEntry, OutcomeRecord, RunPhase
from .outcomes import OutcomeLog


class RunState:
    """Counters, outcome log and cooldowns of the single active run.

    Every seeded run gets a new generation. Writes carrying a stale
    generation are dropped so a loop left over from a stopped or restarted
    run cannot touch the state of the next one.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self.clock = clock
        self.running = False
        self.phase = RunPhase.IDLE
        self.generation = 0
        self.outcomes = OutcomeLog()
        self.cooldowns = CooldownTracker(clock)
        self._lock = threading.RLock()

    def try_begin(self) -> int | None:
        with self._lock:
            if self.running:
                return None
            self.generation += 1
            self.running = True
            self.phase = RunPhase.RUNNING
            self.outcomes = OutcomeLog()
            self.cooldowns = CooldownTracker(self.clock)
            return self.generation

    def is_active(self, generation: int) -> bool:
        with self._lock:
            return self.running and self.generation == generation

    def set_phase(self, generation: int, phase: RunPhase) -> None:
        with self._lock:
            if self.generation == generation:
                self.phase = phase

    def finish(self, generation: int) -> None:
        with self._lock:
            if self.generation == generation:
                self.running = False
                self.phase = RunPhase.STOPPED

    def stop(self) -> None:
        with self._lock:
            self.running = False
            if self.phase is not RunPhase.IDLE:
                self.phase = RunPhase.STOPPED

    def reset(self) -> None:
        with self._lock:
            self.generation += 1
            self.running = False
            self.phase = RunPhase.IDLE
            self.outcomes = OutcomeLog()
            self.cooldowns = CooldownTracker(self.clock)

    def record(
        self,
        generation: int,
        outcome: OutcomeRecord,
        throttle_seconds: int | None = None,
    ) -> bool:
        with self._lock:
            if self.generation != generation:
                return False
            if throttle_seconds is not None:
                self.cooldowns.record_throttle(outcome.worker, outcome.subject, throttle_seconds)
            self.outcomes.append(outcome)
            return True

    def counters_for(self, generation: int) -> dict[str, int] | None:
        with self._lock:
            if self.generation != generation:
                return None
            return self.outcomes.counters()

    def is_throttled(self, worker: str) -> bool:
        return self.cooldowns.is_throttled(worker)

    def active_cooldowns(self) -> list[CooldownEntry]:
        return self.cooldowns.active_entries()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            counters = self.outcomes.counters()
            return {**counters, "running": self.running, "phase": self.phase.value}
