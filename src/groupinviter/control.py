from __future__ import annotations

import logging
import random
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .app_logging import log_with_fields
from .directory import DirectoryService, classify_failure
from .dispatcher import Dispatcher
from .export import MemberFilters, export_members
from .models import RunPlan
from .registry import AccountRegistry


class ControlError(RuntimeError):
    pass


class AlreadyRunningError(ControlError):
    def __init__(self) -> None:
        super().__init__("Already running")


class InvalidRequestError(ControlError):
    pass


@dataclass(slots=True, frozen=True)
class RetryReport:
    subject: str
    worker: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error
        return f"{self.subject} retried successfully with {self.worker}"


class ControlSurface:
    """Start, stop, restart and retry operations plus status queries over one dispatcher."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        registry: AccountRegistry,
        directory: DirectoryService,
        logger: logging.Logger,
        rng: random.Random | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.registry = registry
        self.directory = directory
        self.logger = logger
        self.rng = rng or random.Random()
        self._plan: RunPlan | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start(self, group: str, subjects: Iterable[str], worker_names: list[str]) -> str:
        if not worker_names:
            raise InvalidRequestError("No accounts selected")
        if not group:
            raise InvalidRequestError("Target group required")
        if subjects is None:
            raise InvalidRequestError("Usernames required")
        unknown = [name for name in worker_names if not self.registry.has(name)]
        if unknown:
            raise InvalidRequestError(f"Unknown accounts: {', '.join(unknown)}")

        with self._lock:
            plan = self.dispatcher.begin(group, [str(subject) for subject in subjects], worker_names)
            if plan is None:
                raise AlreadyRunningError()
            self._plan = plan
            self._thread = threading.Thread(
                target=self.dispatcher.run,
                args=(plan,),
                name=f"groupinviter-run-{plan.generation}",
                daemon=True,
            )
            self._thread.start()

        delay = self.dispatcher.config.success_delay_seconds
        return f"Started with {len(worker_names)} accounts, delay {delay:g}s after success"

    def stop(self) -> str:
        self.dispatcher.state.stop()
        self._wake_current()
        log_with_fields(self.logger, logging.INFO, "run_stop_requested")
        return "Stopped"

    def restart(self) -> str:
        self.dispatcher.state.stop()
        self._wake_current()
        self.dispatcher.state.reset()
        log_with_fields(self.logger, logging.INFO, "run_restarted")
        return "Restarted"

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the current run's thread exits; returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def retry(self, subject: str, group: str) -> RetryReport:
        if not group:
            raise InvalidRequestError("Target group required")
        names = self.registry.names()
        if not names:
            raise InvalidRequestError("No accounts available")

        worker_name = self.rng.choice(names)
        handle = self.registry.get_handle(worker_name)
        try:
            self.directory.ensure_joined(handle, group)
        except Exception as exc:
            log_with_fields(
                self.logger,
                logging.DEBUG,
                "join_failed_ignored",
                worker=worker_name,
                group=group,
                error=str(exc),
            )
        try:
            self.directory.invite(handle, group, subject)
        except Exception as exc:
            failure = classify_failure(exc)
            log_with_fields(
                self.logger,
                logging.WARNING,
                "retry_failed",
                username=subject,
                worker=worker_name,
                error=str(failure),
            )
            return RetryReport(subject=subject, worker=worker_name, error=str(failure))
        log_with_fields(self.logger, logging.INFO, "retry_succeeded", username=subject, worker=worker_name)
        return RetryReport(subject=subject, worker=worker_name)

    def export_members(self, account: str, group: str, filters: MemberFilters) -> list[str]:
        if not self.registry.has(account):
            raise InvalidRequestError("Account not found")
        return export_members(self.directory, self.registry.get_handle(account), group, filters)

    def accounts(self) -> list[dict[str, str]]:
        return self.registry.list_workers()

    def stats(self) -> dict[str, Any]:
        return self.dispatcher.state.stats()

    def outcomes(self) -> list[dict[str, Any]]:
        return [record.as_dict() for record in self.dispatcher.state.outcomes.records()]

    def cooldowns(self) -> list[dict[str, Any]]:
        return [entry.as_dict() for entry in self.dispatcher.state.active_cooldowns()]

    def _wake_current(self) -> None:
        plan = self._plan
        if plan is not None:
            plan.wake.set()
