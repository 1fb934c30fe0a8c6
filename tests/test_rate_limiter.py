"""Tests for the JitterPacer class."""

import random
import unittest

from adlib_harvester.rate_limiter import JitterPacer


class TestJitterPacer(unittest.TestCase):
    """Verify per-request jitter stays in its window."""

    def test_delays_within_window(self):
        """Every drawn delay should fall inside [min_ms, max_ms]."""
        pacer = JitterPacer(3000, 8000, rng=random.Random(7), sleep=lambda s: None)
        for _ in range(200):
            delay = pacer.next_delay_ms()
            self.assertGreaterEqual(delay, 3000)
            self.assertLessEqual(delay, 8000)

    def test_acquire_sleeps_in_seconds(self):
        """acquire() should sleep the drawn delay converted to seconds."""
        sleeps = []
        pacer = JitterPacer(1000, 3000, rng=random.Random(1), sleep=sleeps.append)
        delay = pacer.acquire()
        self.assertEqual(len(sleeps), 1)
        self.assertAlmostEqual(sleeps[0], delay / 1000)

    def test_zero_window_does_not_sleep(self):
        """A [0, 0] window should never call sleep."""
        sleeps = []
        pacer = JitterPacer(0, 0, sleep=sleeps.append)
        self.assertEqual(pacer.acquire(), 0)
        self.assertEqual(sleeps, [])

    def test_seeded_draws_repeat(self):
        """Two pacers with the same seed should draw the same delays."""
        a = JitterPacer(1000, 3000, rng=random.Random(42))
        b = JitterPacer(1000, 3000, rng=random.Random(42))
        self.assertEqual([a.next_delay_ms() for _ in range(5)], [b.next_delay_ms() for _ in range(5)])

    def test_invalid_window_rejected(self):
        """An inverted or negative window should raise ValueError."""
        with self.assertRaises(ValueError):
            JitterPacer(5000, 1000)
        with self.assertRaises(ValueError):
            JitterPacer(-1, 10)


if __name__ == "__main__":
    unittest.main()
