from __future__ import annotations

import unittest

from groupinviter.cooldowns import CooldownTracker
from groupinviter.models import OutcomeRecord, OutcomeStatus
from groupinviter.outcomes import OutcomeLog

from support import ManualClock


class CooldownTrackerTest(unittest.TestCase):
    def test_throttle_expires_with_time(self) -> None:
        clock = ManualClock()
        tracker = CooldownTracker(clock)
        entry = tracker.record_throttle("w1", "alice", 30)
        self.assertEqual(entry.expires_at, clock.now + 30)
        self.assertTrue(tracker.is_throttled("w1"))
        self.assertFalse(tracker.is_throttled("w2"))

        clock.advance(29)
        self.assertTrue(tracker.is_throttled("w1"))
        clock.advance(1)
        self.assertFalse(tracker.is_throttled("w1"))
        self.assertEqual(tracker.active_entries(), [])
        self.assertEqual(tracker.entries(), [entry])

    def test_longest_entry_wins(self) -> None:
        clock = ManualClock()
        tracker = CooldownTracker(clock)
        tracker.record_throttle("w1", "a", 100)
        tracker.record_throttle("w1", "b", 10)
        clock.advance(50)
        self.assertTrue(tracker.is_throttled("w1"))
        self.assertEqual([e.subject for e in tracker.active_entries()], ["a"])

    def test_prune_and_clear(self) -> None:
        clock = ManualClock()
        tracker = CooldownTracker(clock)
        tracker.record_throttle("w1", "a", 5)
        tracker.record_throttle("w2", "b", 50)
        clock.advance(10)
        self.assertEqual(tracker.prune_expired(), 1)
        self.assertEqual([e.worker for e in tracker.entries()], ["w2"])
        tracker.clear()
        self.assertEqual(tracker.entries(), [])

    def test_non_positive_duration_rejected(self) -> None:
        tracker = CooldownTracker(ManualClock())
        with self.assertRaises(ValueError):
            tracker.record_throttle("w1", "a", 0)

    def test_entry_as_dict(self) -> None:
        clock = ManualClock()
        entry = CooldownTracker(clock).record_throttle("w1", "alice", 60)
        payload = entry.as_dict()
        self.assertEqual(payload["subject"], "alice")
        self.assertEqual(payload["worker"], "w1")
        self.assertEqual(payload["end_time_epoch"], clock.now + 60)
        self.assertEqual(payload["remaining_sec"], 60)
        self.assertIsInstance(payload["end_time"], str)


class OutcomeLogTest(unittest.TestCase):
    def test_counters_follow_records(self) -> None:
        log = OutcomeLog()
        log.append(OutcomeRecord("a", OutcomeStatus.SUCCESS, "w1"))
        log.append(OutcomeRecord("b", OutcomeStatus.SKIPPED, "w1", error="USER_ALREADY_PARTICIPANT"))
        log.append(OutcomeRecord("c", OutcomeStatus.FAIL, "w2", error="boom"))

        self.assertEqual(log.counters(), {"success": 1, "fail": 2})
        self.assertEqual(len(log), 3)
        self.assertEqual([r.subject for r in log.records()], ["a", "b", "c"])
        self.assertEqual(
            log.records()[1].as_dict(),
            {"username": "b", "status": "skipped", "account": "w1", "reason": "USER_ALREADY_PARTICIPANT"},
        )


if __name__ == "__main__":
    unittest.main()
