from __future__ import annotations

import re
from datetime import datetime

FIRST_INTEGER_REGEX = re.compile(r"\d+")
INVITE_LINK_REGEX = re.compile(r"t\.me/(?:joinchat/)?\+?([A-Za-z0-9_-]+)/?$")


def format_local_time(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds).astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


def parse_first_integer(text: str) -> int | None:
    match = FIRST_INTEGER_REGEX.search(text)
    if not match:
        return None
    return int(match.group(0))


def parse_invite_hash(group: str) -> str | None:
    """Return the invite hash of a ``t.me`` link, or None for plain group names."""
    if "t.me/" not in group:
        return None
    match = INVITE_LINK_REGEX.search(group.strip())
    if not match:
        return None
    return match.group(1)
