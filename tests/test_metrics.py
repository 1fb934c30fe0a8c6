"""Tests for the MetricsCollector class."""

import unittest

from adlib_harvester.metrics import MetricsCollector
from adlib_harvester.models import FetchEvent


def _make_event(**overrides) -> FetchEvent:
    """Helper to build a FetchEvent with sensible defaults."""
    defaults = dict(
        url="https://www.linkedin.com/ad-library/detail/1",
        success=True,
        status_code=200,
        latency_ms=100,
        error_type=None,
    )
    defaults.update(overrides)
    return FetchEvent(**defaults)


class TestMetricsCollector(unittest.TestCase):
    """Verify metrics recording and snapshot aggregation."""

    def test_empty_snapshot(self):
        """Snapshot with no events should have all zeros."""
        snap = MetricsCollector().snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 0)
        self.assertEqual(snap.success_count, 0)
        self.assertEqual(snap.avg_latency_ms, 0.0)

    def test_records_errors(self):
        """Error events should be categorized correctly."""
        metrics = MetricsCollector()
        metrics.record_event(_make_event(success=False, status_code=429, error_type="HTTP_429"))
        metrics.record_event(_make_event(success=False, status_code=None, error_type="Timeout"))
        metrics.record_event(_make_event(success=False, status_code=None, error_type="ConnectionError"))
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 3)
        self.assertEqual(snap.success_count, 0)
        self.assertEqual(snap.http_429_count, 1)
        self.assertEqual(snap.timeout_count, 1)
        self.assertEqual(snap.conn_error_count, 1)

    def test_999_counts_as_forbidden(self):
        """The anti-bot 999 status should be counted with the 403s."""
        metrics = MetricsCollector()
        metrics.record_event(_make_event(success=False, status_code=999, error_type="HTTP_999"))
        metrics.record_event(_make_event(success=False, status_code=403, error_type="HTTP_403"))
        metrics.record_event(_make_event(success=False, status_code=999, error_type="HTTP_999"))
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.http_403_count, 3)
        self.assertEqual(snap.ip_ban_suspected_count, 1)

    def test_no_ip_ban_below_threshold(self):
        """Fewer than 3 forbidden responses should not flag an IP ban."""
        metrics = MetricsCollector()
        for _ in range(2):
            metrics.record_event(_make_event(success=False, status_code=403, error_type="HTTP_403"))
        self.assertEqual(metrics.snapshot(window_secs=30).ip_ban_suspected_count, 0)

    def test_average_latency(self):
        """Average latency should be computed correctly."""
        metrics = MetricsCollector()
        metrics.record_event(_make_event(latency_ms=100))
        metrics.record_event(_make_event(latency_ms=200))
        self.assertAlmostEqual(metrics.snapshot(window_secs=30).avg_latency_ms, 150.0)

    def test_export_json(self):
        """export_json should return all recorded events as dicts."""
        metrics = MetricsCollector()
        metrics.record_event(_make_event())
        exported = metrics.export_json()
        self.assertEqual(len(exported), 1)
        self.assertIn("url", exported[0])
        self.assertIn("timestamp", exported[0])


if __name__ == "__main__":
    unittest.main()
