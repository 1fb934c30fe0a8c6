"""Tests for the BaseFetcher retry pipeline."""

import unittest

from adlib_harvester.base import BaseFetcher, error_type_of
from adlib_harvester.errors import TransportError
from adlib_harvester.identity import Identity
from adlib_harvester.metrics import MetricsCollector
from adlib_harvester.models import FetchResponse

URL = "https://www.linkedin.com/ad-library/detail/1"


class ScriptedFetcher(BaseFetcher):
    """Plays back a list of responses or exceptions, one per attempt."""

    def __init__(self, script, **kwargs):
        kwargs.setdefault("sleep", lambda s: None)
        super().__init__(**kwargs)
        self.script = list(script)
        self.calls = 0

    def _request(self, url, identity):
        self.calls += 1
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return FetchResponse(url=url, status_code=step, body="<html></html>")


class TestBaseFetcher(unittest.TestCase):
    """Verify retries, metrics recording and error mapping."""

    def test_empty_url_rejected(self):
        """An empty URL should raise ValueError before any request."""
        fetcher = ScriptedFetcher([200])
        with self.assertRaises(ValueError) as ctx:
            fetcher.fetch("")
        self.assertIn("url", str(ctx.exception).lower())
        self.assertEqual(fetcher.calls, 0)

    def test_retries_connection_errors(self):
        """Transport exceptions should be retried until a response arrives."""
        metrics = MetricsCollector()
        fetcher = ScriptedFetcher([ConnectionError("down"), 200], metrics=metrics)
        response = fetcher.fetch(URL)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(fetcher.calls, 2)
        self.assertEqual(metrics.snapshot(30).total_requests, 1)

    def test_exhausted_retries_raise_transport_error(self):
        """When every attempt raises, TransportError should carry the reason."""
        metrics = MetricsCollector()
        fetcher = ScriptedFetcher([TimeoutError(), TimeoutError()], metrics=metrics, max_retries=2)
        with self.assertRaises(TransportError) as ctx:
            fetcher.fetch(URL)
        self.assertEqual(ctx.exception.reason, "Timeout")
        self.assertEqual(ctx.exception.attempts, 2)
        self.assertEqual(metrics.snapshot(30).timeout_count, 1)

    def test_server_errors_retried(self):
        """5xx statuses should be retried; the last one is returned."""
        fetcher = ScriptedFetcher([503, 502, 500], max_retries=3)
        response = fetcher.fetch(URL)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(fetcher.calls, 3)

    def test_client_statuses_returned_immediately(self):
        """429 and 403 should come back on the first attempt for the caller to decide."""
        for status in (429, 403, 999, 404):
            fetcher = ScriptedFetcher([status])
            self.assertEqual(fetcher.fetch(URL).status_code, status)
            self.assertEqual(fetcher.calls, 1)

    def test_request_kwargs_use_identity(self):
        """Cookies and proxy should come from the identity."""
        identity = Identity("identity_1", proxy_url="http://proxy:8080", cookies={"li_at": "x"})
        kwargs = BaseFetcher.request_kwargs(identity)
        self.assertEqual(kwargs["cookies"], {"li_at": "x"})
        self.assertEqual(kwargs["proxies"]["https"], "http://proxy:8080")
        self.assertNotIn("proxies", BaseFetcher.request_kwargs(Identity("identity_2")))


class TestErrorTypeOf(unittest.TestCase):
    """Verify exception names collapse onto metric error types."""

    def test_timeouts_and_connection_errors(self):
        """Timeout-like and connection errors map to their metric names."""
        self.assertEqual(error_type_of(TimeoutError()), "Timeout")
        self.assertEqual(error_type_of(ConnectionError()), "ConnectionError")
        self.assertEqual(error_type_of(KeyError("x")), "KeyError")


if __name__ == "__main__":
    unittest.main()
