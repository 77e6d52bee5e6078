from __future__ import annotations

import unittest

from groupinviter.directory import DirectoryError, RateLimitedError
from groupinviter.export import LastSeenWindow, MemberFilters, export_members
from groupinviter.models import Participant

from support import BrokenListingDirectory, FakeDirectory

NOW = 1_700_000_000.0
DAY = 24 * 3600


def sample_members() -> list[Participant]:
    return [
        Participant(identifier=1, username="recent", has_photo=True, last_seen=NOW - 2 * DAY),
        Participant(identifier=2, username=None, has_photo=True, last_seen=NOW - 3 * DAY),
        Participant(identifier=3, username="stale", has_photo=False, last_seen=NOW - 20 * DAY),
        Participant(identifier=4, username="ancient", has_photo=True, last_seen=NOW - 90 * DAY),
        Participant(identifier=5, username="hidden", has_photo=True, last_seen=None),
    ]


class ExportMembersTest(unittest.TestCase):
    def test_no_filters_returns_everyone(self) -> None:
        directory = FakeDirectory(participants=sample_members())
        ids = export_members(directory, "h", "group", MemberFilters(), now=NOW)
        self.assertEqual(ids, ["recent", "2", "stale", "ancient", "hidden"])
        self.assertEqual(directory.joins, [("h", "group")])

    def test_filters_compose(self) -> None:
        directory = FakeDirectory(participants=sample_members())
        filters = MemberFilters(require_username=True, require_photo=True, last_seen=LastSeenWindow.MONTH)
        self.assertEqual(export_members(directory, "h", "group", filters, now=NOW), ["recent"])

    def test_last_seen_windows_exclude_unknown(self) -> None:
        directory = FakeDirectory(participants=sample_members())
        week = export_members(directory, "h", "g", MemberFilters(last_seen=LastSeenWindow.WEEK), now=NOW)
        month = export_members(directory, "h", "g", MemberFilters(last_seen=LastSeenWindow.MONTH), now=NOW)
        self.assertEqual(week, ["recent", "2"])
        self.assertEqual(month, ["recent", "2", "stale"])

    def test_join_errors_ignored_listing_errors_propagate(self) -> None:
        class BrokenListing(FakeDirectory):
            def iter_participants(self, handle, group):
                raise DirectoryError("CHANNEL_PRIVATE")

        joined = FakeDirectory(participants=sample_members()[:1], join_error=RuntimeError("INVITE_HASH_EXPIRED"))
        self.assertEqual(export_members(joined, "h", "g", MemberFilters(), now=NOW), ["recent"])

        with self.assertRaises(DirectoryError):
            export_members(BrokenListing(), "h", "g", MemberFilters(), now=NOW)

    def test_raw_listing_errors_are_classified(self) -> None:
        class DroppedConnection(FakeDirectory):
            def iter_participants(self, handle, group):
                raise ConnectionError("FLOOD_WAIT_30 while reading members")

        with self.assertRaises(RateLimitedError) as ctx:
            export_members(DroppedConnection(), "h", "g", MemberFilters(), now=NOW)
        self.assertEqual(ctx.exception.seconds, 30)
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

        with self.assertRaises(DirectoryError):
            export_members(BrokenListingDirectory(), "h", "g", MemberFilters(), now=NOW)


if __name__ == "__main__":
    unittest.main()
