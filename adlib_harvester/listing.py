"""Listing (search result) pages: result links, total count and pagination cursor."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Comment
from loguru import logger

from .dom import parse_html, text_of
from .normalize import clean_cursor, ensure_absolute_url, extract_ad_id, is_end_of_list, parse_count_text

BASE_URL = "https://www.linkedin.com"
SEARCH_URL = f"{BASE_URL}/ad-library/search"
PAGINATION_URL = f"{BASE_URL}/ad-library/searchPaginationFragment"
PAGE_SIZE = 25
INITIAL_KEY = "initial"

RESULT_ITEM = ".search-result-item"
DETAIL_LINK = 'a[data-tracking-control-name="ad_library_view_ad_detail"]'
COUNT_HEADING = "h1.font-normal.text-sm.text-color-text.py-3"


def _q(value: str) -> str:
    return quote(value, safe="-_.!~*'()")


def search_url(account_owner: Optional[str], keyword: Optional[str]) -> str:
    params = []
    if account_owner:
        params.append(f"accountOwner={_q(account_owner)}")
    if keyword:
        params.append(f"keyword={_q(keyword)}")
    return f"{SEARCH_URL}?{'&'.join(params)}"


def pagination_url(account_owner: Optional[str], keyword: Optional[str], cursor: str) -> str:
    params = []
    if account_owner:
        params.append(f"accountOwner={_q(account_owner)}")
    if keyword:
        params.append(f"keyword={_q(keyword)}")
    params += ["start=0", f"count={PAGE_SIZE}", f"paginationToken={_q(cursor)}"]
    return f"{PAGINATION_URL}?{'&'.join(params)}"


def is_pagination_url(url: str) -> bool:
    return url.startswith(PAGINATION_URL)


@dataclass(frozen=True)
class ListedAd:
    ad_id: str
    url: str


@dataclass
class ListingPage:
    ads: List[ListedAd] = field(default_factory=list)
    total_count: Optional[int] = None
    cursor: Optional[str] = None
    is_last_page: bool = False
    has_pagination: bool = False

    @property
    def next_cursor(self) -> Optional[str]:
        """Cursor of the next page, or None when this page ends the list."""
        if self.is_last_page or is_end_of_list(self.cursor):
            return None
        return self.cursor


def total_count(doc: BeautifulSoup) -> Optional[int]:
    heading = doc.select_one(COUNT_HEADING)
    if heading is not None:
        count = parse_count_text(text_of(heading))
        if count is not None:
            return count
        logger.warning("Count heading found but no number in {!r}", text_of(heading))
    else:
        logger.warning("Total ads count heading not found")
    for h1 in doc.find_all("h1"):
        count = parse_count_text(text_of(h1))
        if count is not None:
            return count
    return None


def _pagination(doc: BeautifulSoup, page: ListingPage) -> None:
    meta = doc.select_one("#paginationMetadata")
    if meta is None:
        logger.warning("No pagination metadata element found")
        return
    comment = meta.find(string=lambda s: isinstance(s, Comment))
    if comment is None:
        logger.warning("No pagination data found in comment")
        return
    try:
        data = json.loads(str(comment))
    except ValueError as exc:
        logger.error("Error parsing pagination data: {}", exc)
        return
    if not isinstance(data, dict):
        logger.warning("Pagination data is not an object: {!r}", data)
        return
    page.has_pagination = True
    page.is_last_page = bool(data.get("isLastPage"))
    page.cursor = clean_cursor(data.get("paginationToken"))


def parse_listing(html: str, first_page: bool = False) -> ListingPage:
    doc = parse_html(html)
    page = ListingPage()
    if first_page:
        page.total_count = total_count(doc)

    for item in doc.select(RESULT_ITEM):
        link = item.select_one(DETAIL_LINK)
        href = link.get("href") if link is not None else None
        if not href:
            logger.warning("Could not extract ad detail URL, skipping ad")
            continue
        url = ensure_absolute_url(href, BASE_URL)
        ad_id = extract_ad_id(url)
        if ad_id == "unknown":
            logger.warning("Could not extract ad id from {}, skipping ad", href)
            continue
        page.ads.append(ListedAd(ad_id=ad_id, url=url))

    _pagination(doc, page)
    return page
