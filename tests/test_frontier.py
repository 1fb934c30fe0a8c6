"""Tests for the Frontier work queue."""

import unittest

from adlib_harvester.frontier import Frontier
from adlib_harvester.models import WorkItem, WorkKind


def _detail(ad_id):
    return WorkItem.detail(f"https://www.linkedin.com/ad-library/detail/{ad_id}", ad_id)


def _listing(cursor):
    return WorkItem.listing(f"https://www.linkedin.com/ad-library/searchPaginationFragment?t={cursor}", cursor)


class TestFrontier(unittest.TestCase):
    """Verify ordering, dedup and the detail cap."""

    def test_listing_before_detail(self):
        """LISTING items should dequeue before DETAIL items queued earlier."""
        frontier = Frontier()
        frontier.add(_detail("1"))
        frontier.add(_detail("2"))
        frontier.add(_listing("abc"))
        self.assertEqual(frontier.next().kind, WorkKind.LISTING)
        self.assertEqual([frontier.next().key, frontier.next().key], ["1", "2"])
        self.assertIsNone(frontier.next())

    def test_fifo_within_priority(self):
        """Equal priorities should come out in insertion order."""
        frontier = Frontier()
        for ad_id in ("c", "a", "b"):
            frontier.add(_detail(ad_id))
        self.assertEqual([frontier.next().key for _ in range(3)], ["c", "a", "b"])

    def test_duplicates_rejected_after_dequeue(self):
        """A key seen once should stay a duplicate for the whole run."""
        frontier = Frontier()
        self.assertTrue(frontier.add(_detail("1")))
        self.assertFalse(frontier.add(_detail("1")))
        frontier.next()
        self.assertFalse(frontier.add(_detail("1")))
        self.assertTrue(frontier.is_empty())

    def test_same_key_different_kind(self):
        """Dedup keys include the kind, so a cursor may equal an ad id."""
        frontier = Frontier()
        self.assertTrue(frontier.add(_detail("42")))
        self.assertTrue(frontier.add(_listing("42")))

    def test_detail_cap(self):
        """DETAIL items beyond the cap should be rejected; LISTING is not capped."""
        frontier = Frontier(max_details=2)
        self.assertTrue(frontier.add(_detail("1")))
        self.assertTrue(frontier.add(_detail("2")))
        self.assertTrue(frontier.detail_cap_reached())
        self.assertFalse(frontier.add(_detail("3")))
        self.assertTrue(frontier.add(_listing("x")))
        self.assertEqual(frontier.details_accepted, 2)

    def test_unlimited_ignores_cap(self):
        """Unlimited mode should accept details past max_details."""
        frontier = Frontier(max_details=1, unlimited=True)
        for ad_id in ("1", "2", "3"):
            self.assertTrue(frontier.add(_detail(ad_id)))
        self.assertFalse(frontier.detail_cap_reached())

    def test_requeue_bypasses_dedup(self):
        """A requeued item should be dequeued again."""
        frontier = Frontier()
        frontier.add(_detail("1"))
        item = frontier.next()
        frontier.requeue(item.next_attempt())
        again = frontier.next()
        self.assertEqual(again.key, "1")
        self.assertEqual(again.attempts, 1)
        self.assertEqual(frontier.details_accepted, 1)

    def test_wait_returns_false_on_timeout(self):
        """wait() on an empty frontier should time out and report empty."""
        self.assertFalse(Frontier().wait(timeout=0.01))


if __name__ == "__main__":
    unittest.main()
