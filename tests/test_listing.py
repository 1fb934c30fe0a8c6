"""Tests for listing page parsing and listing URLs."""

import unittest

from adlib_harvester.listing import (
    PAGINATION_URL,
    is_pagination_url,
    pagination_url,
    parse_listing,
    search_url,
)


def _result(ad_id):
    return (
        '<li class="search-result-item">'
        f'<a data-tracking-control-name="ad_library_view_ad_detail" href="/ad-library/detail/{ad_id}?trk=x">View</a>'
        "</li>"
    )


def _listing(ad_ids, meta='{"isLastPage": false, "paginationToken": "tok123"}', heading="1,234 ads match"):
    items = "".join(_result(ad_id) for ad_id in ad_ids)
    meta_el = f'<div id="paginationMetadata"><!--{meta}--></div>' if meta is not None else ""
    return (
        "<html><body>"
        f'<h1 class="font-normal text-sm text-color-text py-3">{heading}</h1>'
        f"<ul>{items}</ul>{meta_el}"
        "</body></html>"
    )


class TestParseListing(unittest.TestCase):
    """Verify ads, count and cursor come out of a listing page."""

    def test_ads_and_cursor(self):
        """Every result becomes a ListedAd and the cursor is kept."""
        page = parse_listing(_listing(["101", "102", "103"]), first_page=True)
        self.assertEqual([ad.ad_id for ad in page.ads], ["101", "102", "103"])
        self.assertTrue(page.ads[0].url.startswith("https://www.linkedin.com/ad-library/detail/101"))
        self.assertEqual(page.total_count, 1234)
        self.assertEqual(page.next_cursor, "tok123")
        self.assertTrue(page.has_pagination)

    def test_count_only_on_first_page(self):
        """Later pages do not read the count heading."""
        self.assertIsNone(parse_listing(_listing(["1"])).total_count)

    def test_count_from_any_heading(self):
        """A restyled heading still yields the count."""
        html = "<html><body><h1>56 results</h1></body></html>"
        self.assertEqual(parse_listing(html, first_page=True).total_count, 56)

    def test_cursor_fragment_removed(self):
        """A '#fragment' on the token should be cut off."""
        page = parse_listing(_listing(["1"], meta='{"isLastPage": false, "paginationToken": "abc#x"}'))
        self.assertEqual(page.next_cursor, "abc")

    def test_zero_cursor_ends(self):
        """A '0' token ends pagination even when isLastPage is false."""
        page = parse_listing(_listing(["1"], meta='{"isLastPage": false, "paginationToken": "0"}'))
        self.assertEqual(page.cursor, "0")
        self.assertIsNone(page.next_cursor)

    def test_last_page_flag(self):
        """isLastPage true ends pagination regardless of the token."""
        page = parse_listing(_listing(["1"], meta='{"isLastPage": true, "paginationToken": "abc"}'))
        self.assertIsNone(page.next_cursor)

    def test_missing_or_broken_metadata(self):
        """No or unparseable metadata means no next page, not an error."""
        self.assertIsNone(parse_listing(_listing(["1"], meta=None)).next_cursor)
        broken = parse_listing(_listing(["1"], meta="{not json"))
        self.assertIsNone(broken.next_cursor)
        self.assertFalse(broken.has_pagination)
        self.assertIsNone(parse_listing(_listing(["1"], meta="[1, 2]")).next_cursor)

    def test_result_without_link_skipped(self):
        """Results missing their detail link are skipped."""
        html = _listing(["1"]).replace("<ul>", '<ul><li class="search-result-item"><a href="/x">x</a></li>')
        self.assertEqual([ad.ad_id for ad in parse_listing(html).ads], ["1"])


class TestListingUrls(unittest.TestCase):
    """Verify search and pagination URLs."""

    def test_search_url_encodes(self):
        """Owner and keyword should be percent-encoded."""
        url = search_url("Acme & Co", "cloud tools")
        self.assertIn("accountOwner=Acme%20%26%20Co", url)
        self.assertIn("keyword=cloud%20tools", url)

    def test_pagination_url(self):
        """Pagination URLs carry the fixed window and the cursor."""
        url = pagination_url("Acme", "", "tok/1")
        self.assertTrue(url.startswith(PAGINATION_URL + "?accountOwner=Acme&start=0&count=25"))
        self.assertTrue(url.endswith("paginationToken=tok%2F1"))
        self.assertTrue(is_pagination_url(url))
        self.assertFalse(is_pagination_url(search_url("Acme", "")))


if __name__ == "__main__":
    unittest.main()
