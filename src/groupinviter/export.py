from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .app_logging import log_with_fields
from .directory import DirectoryError, DirectoryService, classify_failure
from .models import Participant

DAY_SECONDS = 24 * 3600

logger = logging.getLogger("groupinviter")


class LastSeenWindow(str, Enum):
    ALL = "all"
    WEEK = "week"
    MONTH = "month"

    @property
    def seconds(self) -> int | None:
        if self is LastSeenWindow.WEEK:
            return 7 * DAY_SECONDS
        if self is LastSeenWindow.MONTH:
            return 30 * DAY_SECONDS
        return None


@dataclass(slots=True)
class MemberFilters:
    require_username: bool = False
    require_photo: bool = False
    last_seen: LastSeenWindow = LastSeenWindow.ALL


def filter_participants(
    participants: Iterable[Participant],
    filters: MemberFilters,
    now: float,
) -> Iterator[Participant]:
    stream: Iterable[Participant] = participants
    if filters.require_username:
        stream = (p for p in stream if p.username)
    if filters.require_photo:
        stream = (p for p in stream if p.has_photo)
    window = filters.last_seen.seconds
    if window is not None:
        stream = (p for p in stream if p.last_seen is not None and now - p.last_seen <= window)
    return iter(stream)


def export_members(
    directory: DirectoryService,
    handle: Any,
    group: str,
    filters: MemberFilters,
    now: float | None = None,
) -> list[str]:
    """Join ``group`` if needed and return identifiers of the members passing ``filters``.

    Join errors are ignored. Errors raised while listing participants are
    re-raised as classified ``DirectoryError``s.
    """
    try:
        directory.ensure_joined(handle, group)
    except Exception as exc:
        log_with_fields(logger, logging.DEBUG, "join_failed_ignored", group=group, error=str(exc))
    reference = time.time() if now is None else now
    try:
        participants = directory.iter_participants(handle, group)
        return [p.export_id for p in filter_participants(participants, filters, reference)]
    except DirectoryError:
        raise
    except Exception as exc:
        raise classify_failure(exc) from exc
