from __future__ import annotations

import threading

from .models import OutcomeRecord, OutcomeStatus


class OutcomeLog:
    """Append-only record of job results; skipped jobs count toward ``fail``."""

    def __init__(self) -> None:
        self._records: list[OutcomeRecord] = []
        self._success = 0
        self._fail = 0
        self._lock = threading.Lock()

    def append(self, record: OutcomeRecord) -> None:
        with self._lock:
            self._records.append(record)
            if record.status is OutcomeStatus.SUCCESS:
                self._success += 1
            else:
                self._fail += 1

    def records(self) -> list[OutcomeRecord]:
        with self._lock:
            return list(self._records)

    def counters(self) -> dict[str, int]:
        with self._lock:
            return {"success": self._success, "fail": self._fail}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
