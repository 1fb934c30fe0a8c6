"""End-to-end tests for the Crawler against a scripted fetcher."""

import threading
import unittest
from collections import Counter
from unittest import mock

from adlib_harvester.base import BaseFetcher
from adlib_harvester.config import CrawlConfig
from adlib_harvester.crawler import Crawler
from adlib_harvester.identity import IdentityPool
from adlib_harvester.listing import BASE_URL, pagination_url, search_url
from adlib_harvester.models import ErrorKind, FetchResponse, Outcome, WorkItem
from adlib_harvester.storage import MemoryStorage


def _no_sleep(seconds):
    return None


def _listing_html(ad_ids, token):
    items = "".join(
        '<li class="search-result-item">'
        f'<a data-tracking-control-name="ad_library_view_ad_detail" href="/ad-library/detail/{ad_id}">View</a></li>'
        for ad_id in ad_ids
    )
    return (
        f'<html><body><h1 class="font-normal text-sm text-color-text py-3">{len(ad_ids)} ads match</h1>'
        f'<ul>{items}</ul><div id="paginationMetadata">'
        f'<!--{{"isLastPage": false, "paginationToken": "{token}"}}--></div></body></html>'
    )


def _detail_html(ad_id):
    return (
        '<html><body><div class="ad-preview-content"><div class="ad-preview" data-creative-type="TEXT_AD">'
        '<div class="container-lined"><a data-tracking-control-name="ad_library_ad_preview_text_ad_content_link" '
        f'href="https://acme.example/{ad_id}">Offer {ad_id}</a></div></div></div>'
        f"<!-- {'x' * 1200} --></body></html>"
    )


def _detail_url(ad_id):
    return f"{BASE_URL}/ad-library/detail/{ad_id}"


class ScriptedFetcher(BaseFetcher):
    """Serves canned responses per URL; the last response for a URL repeats."""

    def __init__(self, script):
        super().__init__(max_retries=1, sleep=_no_sleep)
        self.script = {url: list(steps) for url, steps in script.items()}
        self.requests = []

    def _request(self, url, identity):
        self.requests.append((url, identity.identity_id if identity else None))
        steps = self.script.get(url) or [(404, "")]
        status, body = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(status, Exception):
            raise status
        return FetchResponse(url=url, status_code=status, body=body)


def _make_crawler(script, **config):
    config.setdefault("local_mode", True)
    cfg = CrawlConfig(account_owner="Acme", min_detail_delay=0, max_detail_delay=0, **config)
    sink = MemoryStorage()
    fetcher = ScriptedFetcher(script)
    identities = IdentityPool(max_size=cfg.pool_size, max_usage=cfg.identity_max_usage)
    crawler = Crawler(cfg, sink, fetcher=fetcher, identities=identities, sleep=_no_sleep, status_interval_secs=60)
    return crawler, sink, fetcher, identities


START = search_url("Acme", "")


class TestCrawler(unittest.TestCase):
    """Verify a full local-mode run over two listing pages."""

    def test_full_run(self):
        """Duplicates collapse, 429 and 403 are retried, 404 is dropped."""
        script = {
            START: [(200, _listing_html(["1", "2", "2", "3"], "tok"))],
            pagination_url("Acme", "", "tok"): [(200, _listing_html(["3", "4"], "0"))],
            _detail_url("1"): [(200, _detail_html("1"))],
            _detail_url("2"): [(429, ""), (200, _detail_html("2"))],
            _detail_url("3"): [(403, ""), (200, _detail_html("3"))],
            _detail_url("4"): [(404, "")],
        }
        crawler, sink, fetcher, identities = _make_crawler(script)
        tracker = crawler.run()

        self.assertEqual(sorted(sink.records), ["1", "2", "3"])
        self.assertEqual(sink.records["2"].headline, "Offer 2")
        self.assertEqual(tracker.ads_collected, 4)
        self.assertEqual(tracker.details_collected, 3)
        self.assertEqual(tracker.pages_processed, 2)
        self.assertEqual(tracker.failures, {"NOT_FOUND": 1})
        self.assertEqual(identities.retired_count, 1)

        final = sink.checkpoints[-1].to_dict()
        self.assertEqual(final["adsCollected"], 4)
        self.assertEqual(final["detailsCollected"], 3)
        self.assertIn("durationSeconds", final)

    def test_listing_pages_before_details(self):
        """In local mode every listing page is fetched before any detail page."""
        script = {
            START: [(200, _listing_html(["1", "2"], "tok"))],
            pagination_url("Acme", "", "tok"): [(200, _listing_html(["3"], "0"))],
            _detail_url("1"): [(200, _detail_html("1"))],
            _detail_url("2"): [(200, _detail_html("2"))],
            _detail_url("3"): [(200, _detail_html("3"))],
        }
        crawler, _, fetcher, _ = _make_crawler(script)
        crawler.run()
        urls = [url for url, _ in fetcher.requests]
        self.assertEqual(urls[:2], [START, pagination_url("Acme", "", "tok")])
        self.assertEqual(urls[2:], [_detail_url("1"), _detail_url("2"), _detail_url("3")])

    def test_cap_limits_details(self):
        """max_urls_count caps the emitted records."""
        script = {
            START: [(200, _listing_html(["1", "2", "3"], "tok"))],
            pagination_url("Acme", "", "tok"): [(200, _listing_html(["4"], "0"))],
        }
        for ad_id in "1234":
            script[_detail_url(ad_id)] = [(200, _detail_html(ad_id))]
        crawler, sink, fetcher, _ = _make_crawler(script, max_urls_count=2)
        crawler.run()
        self.assertEqual(sorted(sink.records), ["1", "2"])
        self.assertNotIn(pagination_url("Acme", "", "tok"), [url for url, _ in fetcher.requests])

    def test_persistent_block_is_dropped(self):
        """An item blocked on every attempt is retried with fresh identities, then dropped."""
        script = {
            START: [(200, _listing_html(["1"], "0"))],
            _detail_url("1"): [(403, "")],
        }
        crawler, sink, fetcher, identities = _make_crawler(script, max_request_retries=2)
        tracker = crawler.run()
        detail_calls = [ident for url, ident in fetcher.requests if url == _detail_url("1")]
        self.assertEqual(len(detail_calls), 3)
        self.assertEqual(len(set(detail_calls)), 3)
        self.assertEqual(identities.retired_count, 3)
        self.assertEqual(tracker.failures, {"BLOCKED": 1})
        self.assertEqual(sink.records, {})

    def test_transport_error_counted(self):
        """A fetch that never gets a response is dropped as a transport failure."""
        script = {
            START: [(200, _listing_html(["1"], "0"))],
            _detail_url("1"): [(ConnectionError("reset"), "")],
        }
        crawler, sink, _, _ = _make_crawler(script)
        tracker = crawler.run()
        self.assertEqual(tracker.failures, {"TRANSPORT": 1})
        self.assertEqual(sink.records, {})

    def test_url_only_run(self):
        """With details off the run emits URL-only records and fetches no detail page."""
        script = {START: [(200, _listing_html(["1", "2"], "0"))]}
        crawler, sink, fetcher, _ = _make_crawler(script, scrape_ad_details=False)
        crawler.run()
        self.assertEqual(sorted(sink.records), ["1", "2"])
        self.assertEqual([url for url, _ in fetcher.requests], [START])

    def test_unexpected_error_is_counted(self):
        """An exception outside the handler still ends as a counted UNEXPECTED failure."""
        script = {START: [(200, _listing_html(["1"], "0"))]}
        crawler, sink, _, identities = _make_crawler(script)
        with mock.patch.object(identities, "record_use", side_effect=RuntimeError("usage ledger unavailable")):
            tracker = crawler.run()
        self.assertEqual(tracker.failures, {"UNEXPECTED": 1})
        self.assertEqual(sink.checkpoints[-1].to_dict()["failures"], {"UNEXPECTED": 1})
        self.assertEqual(identities.retired_count, 0)
        self.assertEqual(sink.records, {})


class TestParallelCrawler(unittest.TestCase):
    """Verify a parallel-mode run with a scaled worker pool."""

    def test_parallel_run_drains_everything_once(self):
        """Every ad is fetched once and emitted, and the run terminates."""
        ids = [str(n) for n in range(1, 13)]
        script = {
            START: [(200, _listing_html(ids[:6], "tok"))],
            pagination_url("Acme", "", "tok"): [(200, _listing_html(ids[4:], "0"))],
        }
        for ad_id in ids:
            script[_detail_url(ad_id)] = [(200, _detail_html(ad_id))]
        crawler, sink, fetcher, _ = _make_crawler(
            script, local_mode=False, min_crawler_concurrency=2, max_crawler_concurrency=4
        )

        result = {}
        runner = threading.Thread(target=lambda: result.setdefault("tracker", crawler.run()), daemon=True)
        runner.start()
        runner.join(timeout=30)
        self.assertFalse(runner.is_alive(), "crawl did not terminate")

        tracker = result["tracker"]
        self.assertEqual(sorted(sink.records, key=int), ids)
        self.assertEqual(tracker.details_collected, 12)
        self.assertEqual(tracker.pages_processed, 2)
        self.assertEqual(tracker.failures, {})

        urls = [url for url, _ in fetcher.requests]
        self.assertEqual(urls[0], START)
        expected = [START, pagination_url("Acme", "", "tok")] + [_detail_url(ad_id) for ad_id in ids]
        self.assertEqual(Counter(urls), Counter(expected))
        self.assertTrue(2 <= crawler._controller.limit <= 4)


class TestResolve(unittest.TestCase):
    """Verify outcome resolution on its own."""

    def test_rate_limited_requeues_same_attempt(self):
        """A 429 puts the same item back without counting an attempt."""
        crawler, _, _, identities = _make_crawler({})
        item = WorkItem.detail(_detail_url("1"), "1")
        crawler.frontier.add(item)
        crawler.frontier.next()
        crawler.resolve(Outcome.failure(item, ErrorKind.RATE_LIMITED, "HTTP 429", 429), identities.acquire())
        self.assertEqual(crawler.frontier.next(), item)
        self.assertEqual(identities.retired_count, 0)


if __name__ == "__main__":
    unittest.main()
