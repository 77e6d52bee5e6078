from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from .app_logging import log_with_fields
from .config import AccountConfig, DirectoryConfig
from .models import Participant
from .utils import parse_first_integer, parse_invite_hash


class DirectoryError(RuntimeError):
    """A Directory Service call failed for a reason not covered by a subclass."""

    @classmethod
    def from_message(cls, message: str) -> DirectoryError:
        if "FLOOD_WAIT" in message:
            seconds = parse_first_integer(message)
            return RateLimitedError(message, seconds=seconds if seconds is not None else 1)
        if "USER_ALREADY" in message:
            return AlreadyMemberError(message)
        if "USER_BANNED" in message:
            return BannedError(message)
        if "USER_PRIVACY" in message:
            return PrivacyRestrictedError(message)
        return DirectoryError(message)


class RateLimitedError(DirectoryError):
    def __init__(self, message: str, seconds: int) -> None:
        super().__init__(message)
        self.seconds = max(1, int(seconds))


class PolicySkipError(DirectoryError):
    """The subject cannot be invited and retrying it would not help."""


class AlreadyMemberError(PolicySkipError):
    pass


class BannedError(PolicySkipError):
    pass


class PrivacyRestrictedError(PolicySkipError):
    pass


def classify_failure(exc: BaseException) -> DirectoryError:
    if isinstance(exc, DirectoryError):
        return exc
    return DirectoryError.from_message(str(exc) or type(exc).__name__)


class DirectoryService(Protocol):
    def connect(self, account: AccountConfig) -> Any: ...

    def ensure_joined(self, handle: Any, group: str) -> None: ...

    def invite(self, handle: Any, group: str, subject: str) -> None: ...

    def iter_participants(self, handle: Any, group: str) -> Iterator[Participant]: ...


class DryRunDirectory:
    """Directory backend that performs no network calls; every join and invite succeeds."""

    def __init__(self, participants: Iterable[dict[str, Any]] | None = None) -> None:
        self.logger = logging.getLogger("groupinviter")
        self.participants = [
            Participant(
                identifier=item["id"],
                username=item.get("username"),
                has_photo=bool(item.get("photo", False)),
                last_seen=item.get("last_seen"),
            )
            for item in participants or []
        ]

    def connect(self, account: AccountConfig) -> str:
        return account.name

    def ensure_joined(self, handle: str, group: str) -> None:
        log_with_fields(
            self.logger,
            logging.DEBUG,
            "dry_run_join",
            account=handle,
            group=group,
            invite_hash=parse_invite_hash(group),
        )

    def invite(self, handle: str, group: str, subject: str) -> None:
        log_with_fields(self.logger, logging.INFO, "dry_run_invite", account=handle, group=group, username=subject)

    def iter_participants(self, handle: str, group: str) -> Iterator[Participant]:
        _ = (handle, group)
        yield from self.participants


def load_directory(config: DirectoryConfig) -> DirectoryService:
    module_name, sep, attribute = config.factory.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"`directory.factory` must look like `module:attribute`, found: {config.factory}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if factory is None:
        raise ValueError(f"`directory.factory` not found: {config.factory}")
    return factory(**config.options)
