from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .utils import format_local_time


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAIL = "fail"
    SKIPPED = "skipped"


class RunPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING_ALL_THROTTLED = "waiting_all_throttled"
    STOPPED = "stopped"


@dataclass(slots=True, frozen=True)
class OutcomeRecord:
    subject: str
    status: OutcomeStatus
    worker: str
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "username": self.subject,
            "status": self.status.value,
            "account": self.worker,
        }
        if self.error is not None:
            key = "reason" if self.status is OutcomeStatus.SKIPPED else "error"
            payload[key] = self.error
        return payload


@dataclass(slots=True, frozen=True)
class CooldownEntry:
    subject: str
    worker: str
    expires_at: float
    remaining_seconds: int

    @property
    def end_time(self) -> str:
        return format_local_time(self.expires_at)

    def as_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "worker": self.worker,
            "end_time": self.end_time,
            "end_time_epoch": self.expires_at,
            "remaining_sec": self.remaining_seconds,
        }


@dataclass(slots=True, frozen=True)
class Participant:
    identifier: int | str
    username: str | None = None
    has_photo: bool = False
    last_seen: float | None = None

    @property
    def export_id(self) -> str:
        return self.username or str(self.identifier)


@dataclass(slots=True)
class RunPlan:
    """A seeded run: the job queue plus the loop's cursor and rotation pointer."""

    generation: int
    group: str
    subjects: list[str]
    worker_names: list[str]
    cursor: int = 0
    pointer: int = 0
    wake: threading.Event = field(default_factory=threading.Event)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.subjects)


@dataclass(slots=True, frozen=True)
class CycleResult:
    phase: RunPhase
    delay_seconds: float = 0.0
    outcome: OutcomeRecord | None = None
