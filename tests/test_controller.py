"""Tests for the ThreadPoolController class."""

import threading
import unittest

from adlib_harvester.controller import ThreadPoolController
from adlib_harvester.models import Outcome, WorkItem


class TestThreadPoolController(unittest.TestCase):
    """Verify the adjustable in-flight limit."""

    def test_limit_clamped_to_pool(self):
        """The limit stays between 1 and max_workers."""
        controller = ThreadPoolController(max_workers=4, initial_limit=9)
        self.assertEqual(controller.limit, 4)
        self.assertEqual(controller.set_concurrency_limit(0), (4, 1))
        controller.stop()

    def test_capacity_released_after_work(self):
        """A finished item frees its slot."""
        controller = ThreadPoolController(max_workers=1, initial_limit=1)
        controller.start()
        release = threading.Event()

        def work(item):
            release.wait(timeout=5)
            return Outcome.success(item)

        future = controller.submit(work, WorkItem.detail("https://x/1", "1"))
        self.assertFalse(controller.wait_for_capacity(timeout=0.05))
        release.set()
        self.assertTrue(future.result(timeout=5).ok)
        self.assertTrue(controller.wait_for_capacity(timeout=5))
        self.assertEqual(controller.active, 0)
        controller.stop()

    def test_stopped_controller_has_no_capacity(self):
        """wait_for_capacity reports False once stopped."""
        controller = ThreadPoolController(max_workers=2, initial_limit=2)
        controller.start()
        controller.stop()
        self.assertFalse(controller.wait_for_capacity(timeout=0.05))


if __name__ == "__main__":
    unittest.main()
