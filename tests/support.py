from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any

from groupinviter.config import AccountConfig, DispatchConfig
from groupinviter.dispatcher import Dispatcher
from groupinviter.models import Participant
from groupinviter.registry import AccountRegistry


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDirectory:
    """Directory double: ``outcomes`` maps a username to the exception its invite raises."""

    def __init__(
        self,
        outcomes: dict[str, Exception] | None = None,
        participants: list[Participant] | None = None,
        join_error: Exception | None = None,
    ) -> None:
        self.outcomes = dict(outcomes or {})
        self.participants = list(participants or [])
        self.join_error = join_error
        self.joins: list[tuple[Any, str]] = []
        self.invites: list[tuple[Any, str, str]] = []
        self.gate: threading.Event | None = None
        self.entered = threading.Event()

    def connect(self, account: AccountConfig) -> str:
        return f"handle:{account.name}"

    def ensure_joined(self, handle: Any, group: str) -> None:
        self.joins.append((handle, group))
        if self.join_error is not None:
            raise self.join_error

    def invite(self, handle: Any, group: str, subject: str) -> None:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        self.invites.append((handle, group, subject))
        error = self.outcomes.get(subject)
        if error is not None:
            raise error

    def iter_participants(self, handle: Any, group: str) -> Iterator[Participant]:
        yield from self.participants


def quiet_logger() -> logging.Logger:
    logger = logging.getLogger("test_groupinviter")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


def build_dispatcher(
    directory: FakeDirectory,
    account_names: list[str],
    clock: ManualClock | None = None,
    success_delay_ms: int = 30000,
) -> Dispatcher:
    logger = quiet_logger()
    accounts = [AccountConfig(name=name, phone=f"+1555{idx}") for idx, name in enumerate(account_names)]
    registry = AccountRegistry(accounts, logger)
    registry.connect_all(directory.connect)
    return Dispatcher(
        config=DispatchConfig(success_delay_ms=success_delay_ms, all_throttled_backoff_seconds=5),
        registry=registry,
        directory=directory,
        logger=logger,
        clock=clock or ManualClock(),
    )


class BrokenListingDirectory(FakeDirectory):
    """Backend whose participant listing fails with a raw transport error."""

    def __init__(self, **options: Any) -> None:
        super().__init__()

    def iter_participants(self, handle: Any, group: str) -> Iterator[Participant]:
        raise ConnectionError("CHANNEL_PRIVATE")
