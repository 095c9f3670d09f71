import os
import sys
import threading
import unittest

# Add the parent directory to the path to access order_bot
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from constants.schemas import ActionEvent, EventKind, SlackEvent
from order_bot.dedup import EventDeduplicator, RecentKeySet

NOW = 1_700_000_000.0


class TestRecentKeySet(unittest.TestCase):

    def test_capacity_must_be_positive(self):
        with self.assertRaises(ValueError):
            RecentKeySet(0)

    def test_add_reports_new_keys(self):
        keys = RecentKeySet(3)
        self.assertTrue(keys.add("a"))
        self.assertFalse(keys.add("a"))
        self.assertIn("a", keys)
        self.assertEqual(len(keys), 1)

    def test_evicts_in_insertion_order(self):
        keys = RecentKeySet(3)
        for key in ["a", "b", "c"]:
            keys.add(key)
        # looking at "a" must not save it from eviction
        self.assertIn("a", keys)
        keys.add("d")
        self.assertEqual(keys.snapshot(), ["b", "c", "d"])
        self.assertNotIn("a", keys)


class TestEventDeduplicator(unittest.TestCase):

    def setUp(self):
        self.dedup = EventDeduplicator()

    def test_same_event_twice(self):
        self.assertFalse(self.dedup.should_skip("Ev1", NOW, now=NOW))
        self.assertTrue(self.dedup.should_skip("Ev1", NOW, now=NOW))

    def test_missing_identity_is_never_skipped(self):
        for _ in range(3):
            self.assertFalse(self.dedup.should_skip(None, NOW, now=NOW))
            self.assertFalse(self.dedup.should_skip("", NOW, now=NOW))
        self.assertEqual(len(self.dedup), 0)

    def test_stale_event_is_skipped_even_if_new(self):
        self.assertTrue(self.dedup.should_skip("EvOld", NOW - 61, now=NOW))
        self.assertNotIn("EvOld", self.dedup)

    def test_event_within_window_is_processed(self):
        self.assertFalse(self.dedup.should_skip("EvRecent", NOW - 59, now=NOW))

    def test_event_without_timestamp_is_processed(self):
        self.assertFalse(self.dedup.should_skip("EvNoTime", None, now=NOW))

    def test_101st_identity_evicts_the_first(self):
        for i in range(100):
            self.assertFalse(self.dedup.should_skip(f"Ev{i}", NOW, now=NOW))
        self.assertEqual(len(self.dedup), 100)

        # re-checking Ev0 is a skip and must not refresh it
        self.assertTrue(self.dedup.should_skip("Ev0", NOW, now=NOW))
        self.assertFalse(self.dedup.should_skip("Ev100", NOW, now=NOW))

        self.assertEqual(len(self.dedup), 100)
        self.assertNotIn("Ev0", self.dedup)
        self.assertIn("Ev1", self.dedup)
        self.assertFalse(self.dedup.should_skip("Ev0", NOW, now=NOW))

    def test_events_and_actions_share_the_set(self):
        event = SlackEvent(event_id="Ev1", event_time=NOW, kind=EventKind.NEW, message_ts="1.1", channel="C1")
        action = ActionEvent(trigger_id="Tr1", action_id="approve_order", channel="C1", message_ts="2.2")
        self.assertFalse(self.dedup.should_skip_event(event, now=NOW))
        self.assertFalse(self.dedup.should_skip_event(action, now=NOW))
        self.assertTrue(self.dedup.should_skip_event(event, now=NOW))
        self.assertTrue(self.dedup.should_skip_event(action, now=NOW))
        self.assertEqual(self.dedup.snapshot(), ["Ev1", "Tr1"])

    def test_concurrent_duplicates_pass_once(self):
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(self.dedup.should_skip("EvRace", NOW, now=NOW))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results.count(False), 1)
        self.assertEqual(results.count(True), 7)


if __name__ == '__main__':
    unittest.main()
