"""Markup helpers: ordered selector cascades, asset URL resolution and placeholder detection."""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from .normalize import ensure_absolute_url

# Primary delivery attribute, then lazy-load attributes, then the ghost placeholder.
IMAGE_SOURCE_ATTRS = ("src", "data-delayed-url", "data-src", "data-ghost-url")

DEFAULT_PLACEHOLDER_SIGNATURES = frozenset({
    "https://static.licdn.com/aero-v1/sc/h/9l8dv1r8a09nem281grvopn9l",
})

_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def select_first(root: Tag, selectors: Sequence[str]) -> Optional[Tag]:
    """First element matched by the first selector that matches anything."""
    for selector in selectors:
        found = root.select_one(selector)
        if found is not None:
            return found
    return None


def first_text(root: Tag, selectors: Sequence[str]) -> Optional[str]:
    """Stripped text of the first selector whose element has non-empty text."""
    for selector in selectors:
        for el in root.select(selector):
            text = el.get_text(strip=True)
            if text:
                return text
    return None


def text_of(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return " ".join(el.get_text(" ", strip=True).split())


def first_attr(el: Optional[Tag], attrs: Iterable[str] = IMAGE_SOURCE_ATTRS) -> Optional[str]:
    if el is None:
        return None
    for attr in attrs:
        value = el.get(attr)
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return None


def has_class(el: Tag, name: str) -> bool:
    return name in (el.get("class") or [])


def closest(el: Tag, classes: Sequence[str]) -> Optional[Tag]:
    """Nearest ancestor carrying every class in ``classes``."""
    wanted = set(classes)

    def matches(tag: Tag) -> bool:
        return wanted.issubset(tag.get("class") or [])

    return el.find_parent(matches)


def text_with_links(el: Tag) -> str:
    """Element text with each link replaced by its visible text and <br> as newlines."""
    clone = copy.copy(el)
    for anchor in clone.find_all("a"):
        anchor.replace_with(anchor.get_text(strip=True))
    for br in clone.find_all("br"):
        br.replace_with("\n")
    return clone.get_text().strip()


def structured_text(el: Tag) -> str:
    """Rich block text: list items bulleted, paragraphs and breaks as newlines, blank runs collapsed."""
    clone = copy.copy(el)
    for br in clone.find_all("br"):
        br.replace_with("\n")
    for li in clone.find_all("li"):
        li.insert(0, "    * ")
        li.append("\n")
    for p in clone.find_all("p"):
        p.append("\n")
    return _BLANK_LINES_RE.sub("\n", clone.get_text()).strip()


@dataclass(frozen=True)
class PlaceholderPolicy:
    """Known 'missing asset' image URLs.

    A match only counts as a placeholder when the image carries no alt text
    or is flagged with the ``onerror`` class; a described image is kept."""

    signatures: frozenset = DEFAULT_PLACEHOLDER_SIGNATURES

    @classmethod
    def from_signatures(cls, signatures: Optional[Iterable[str]]) -> "PlaceholderPolicy":
        if not signatures:
            return cls()
        return cls(signatures=frozenset(DEFAULT_PLACEHOLDER_SIGNATURES | set(signatures)))

    def is_placeholder(self, img: Tag, src: Optional[str], base_url: str) -> bool:
        if not src:
            return False
        if ensure_absolute_url(src, base_url) not in self.signatures:
            return False
        alt = (img.get("alt") or "").strip()
        return alt == "" or has_class(img, "onerror")


def image_source(
    img: Optional[Tag],
    base_url: str,
    placeholders: Optional[PlaceholderPolicy] = None,
    attrs: Sequence[str] = IMAGE_SOURCE_ATTRS,
) -> Optional[str]:
    """Absolute URL from the attribute cascade, or None when absent or a placeholder."""
    src = first_attr(img, attrs)
    if not src:
        return None
    if placeholders is not None and placeholders.is_placeholder(img, src, base_url):
        return None
    return ensure_absolute_url(src, base_url)


def srcset_candidates(img: Tag) -> list:
    srcset = img.get("srcset") or ""
    candidates = []
    for part in srcset.split(","):
        url = part.strip().split(" ")[0]
        if url:
            candidates.append(url)
    return candidates
