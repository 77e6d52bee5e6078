from __future__ import annotations

import logging
import time
from typing import Any

from .app_logging import log_with_fields
from .config import DispatchConfig
from .cooldowns import Clock
from .directory import DirectoryService, PolicySkipError, RateLimitedError, classify_failure
from .models import CycleResult, OutcomeRecord, OutcomeStatus, RunPhase, RunPlan
from .registry import AccountRegistry
from .state import RunState


class Dispatcher:
    """Walks a run's queue one job per cycle, rotating over the selected workers."""

    def __init__(
        self,
        config: DispatchConfig,
        registry: AccountRegistry,
        directory: DirectoryService,
        logger: logging.Logger,
        clock: Clock = time.time,
    ) -> None:
        self.config = config
        self.registry = registry
        self.directory = directory
        self.logger = logger
        self.state = RunState(clock)

    def begin(self, group: str, subjects: list[str], worker_names: list[str]) -> RunPlan | None:
        generation = self.state.try_begin()
        if generation is None:
            return None
        plan = RunPlan(
            generation=generation,
            group=group,
            subjects=list(subjects),
            worker_names=list(worker_names),
        )
        log_with_fields(
            self.logger,
            logging.INFO,
            "run_started",
            generation=generation,
            group=group,
            jobs=len(plan.subjects),
            workers=plan.worker_names,
        )
        return plan

    def run(self, plan: RunPlan) -> None:
        try:
            while True:
                result = self.run_cycle(plan)
                if result.phase is RunPhase.STOPPED:
                    break
                if result.delay_seconds > 0:
                    plan.wake.wait(result.delay_seconds)
        except Exception as exc:
            self.state.finish(plan.generation)
            log_with_fields(
                self.logger,
                logging.ERROR,
                "run_crashed",
                generation=plan.generation,
                error=str(exc),
            )
            return
        counters = self.state.counters_for(plan.generation)
        if counters is None:
            log_with_fields(
                self.logger,
                logging.INFO,
                "run_superseded",
                generation=plan.generation,
                processed=plan.cursor,
            )
            return
        log_with_fields(
            self.logger,
            logging.INFO,
            "run_finished",
            generation=plan.generation,
            processed=plan.cursor,
            **counters,
        )

    def run_cycle(self, plan: RunPlan) -> CycleResult:
        if not self.state.is_active(plan.generation) or plan.exhausted:
            self.state.finish(plan.generation)
            return CycleResult(RunPhase.STOPPED)

        self.state.cooldowns.prune_expired()
        worker_name = self._next_worker(plan)
        if worker_name is None:
            self.state.set_phase(plan.generation, RunPhase.WAITING_ALL_THROTTLED)
            log_with_fields(
                self.logger,
                logging.INFO,
                "all_workers_throttled",
                generation=plan.generation,
                retry_in_seconds=self.config.all_throttled_backoff_seconds,
            )
            return CycleResult(
                RunPhase.WAITING_ALL_THROTTLED,
                delay_seconds=self.config.all_throttled_backoff_seconds,
            )

        self.state.set_phase(plan.generation, RunPhase.RUNNING)
        subject = plan.subjects[plan.cursor]
        handle = self.registry.get_handle(worker_name)
        self._ensure_joined(handle, plan.group, worker_name)
        outcome, delay = self._invite(plan, handle, worker_name, subject)
        plan.cursor += 1
        return CycleResult(RunPhase.RUNNING, delay_seconds=delay, outcome=outcome)

    def _next_worker(self, plan: RunPlan) -> str | None:
        # A full unsuccessful pass leaves the pointer where it started.
        count = len(plan.worker_names)
        for _ in range(count):
            name = plan.worker_names[plan.pointer]
            plan.pointer = (plan.pointer + 1) % count
            if not self.state.is_throttled(name):
                return name
        return None

    def _ensure_joined(self, handle: Any, group: str, worker_name: str) -> None:
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

    def _invite(
        self,
        plan: RunPlan,
        handle: Any,
        worker_name: str,
        subject: str,
    ) -> tuple[OutcomeRecord, float]:
        try:
            self.directory.invite(handle, plan.group, subject)
        except Exception as exc:
            failure = classify_failure(exc)
        else:
            outcome = OutcomeRecord(subject=subject, status=OutcomeStatus.SUCCESS, worker=worker_name)
            self.state.record(plan.generation, outcome)
            log_with_fields(self.logger, logging.INFO, "invite_succeeded", username=subject, worker=worker_name)
            return outcome, self.config.success_delay_seconds

        if isinstance(failure, RateLimitedError):
            outcome = OutcomeRecord(
                subject=subject,
                status=OutcomeStatus.FAIL,
                worker=worker_name,
                error=str(failure),
            )
            self.state.record(plan.generation, outcome, throttle_seconds=failure.seconds)
            log_with_fields(
                self.logger,
                logging.WARNING,
                "invite_rate_limited",
                username=subject,
                worker=worker_name,
                wait_seconds=failure.seconds,
            )
        elif isinstance(failure, PolicySkipError):
            outcome = OutcomeRecord(
                subject=subject,
                status=OutcomeStatus.SKIPPED,
                worker=worker_name,
                error=str(failure),
            )
            self.state.record(plan.generation, outcome)
            log_with_fields(
                self.logger,
                logging.INFO,
                "invite_skipped",
                username=subject,
                worker=worker_name,
                reason=str(failure),
            )
        else:
            outcome = OutcomeRecord(
                subject=subject,
                status=OutcomeStatus.FAIL,
                worker=worker_name,
                error=str(failure),
            )
            self.state.record(plan.generation, outcome)
            log_with_fields(
                self.logger,
                logging.ERROR,
                "invite_failed",
                username=subject,
                worker=worker_name,
                error=str(failure),
            )
        return outcome, 0.0
