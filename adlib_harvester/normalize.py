"""Pure text/number normalizers shared by the listing and detail parsers."""
from __future__ import annotations

import hashlib
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from .models import ImpressionRange

TRACKING_PARAMS = frozenset({"trk"})
END_OF_LIST_CURSOR = "0"
LESS_THAN_PERCENT = 0.005

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}
_RANGE_SEP_RE = re.compile(r"\s*[-–]\s*")
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([km])?$")
_PERCENT_RE = re.compile(r"(\d+)")
_COMPANY_ID_RE = re.compile(r"/company/(\d+)")
_MEMBER_ID_RE = re.compile(r"/in/([^/?#]+)")

_FINGERPRINT_RULES = (
    (re.compile(r"\s+"), " "),
    (re.compile(r"\d{10,}"), "ID"),
    (re.compile(r"\d{4}-\d{2}-\d{2}"), "DATE"),
    (re.compile(r"[a-f0-9]{32}"), "HASH"),
)


def _parse_count(raw: str) -> Optional[int]:
    value = raw.strip().lower().replace(",", "")
    match = _NUMBER_RE.match(value)
    if not match:
        return None
    number = float(match.group(1)) * _MULTIPLIERS.get(match.group(2) or "", 1)
    return int(round(number))


def parse_impression_range(text: Optional[str]) -> ImpressionRange:
    """Parse '10k-50k', '< 1k' or '2m' into an ImpressionRange.

    A leading '<' yields a max-only bound; a single value yields min == max.
    """
    if not text or not text.strip():
        return ImpressionRange()
    text = text.strip()

    if text.startswith("<"):
        return ImpressionRange(max=_parse_count(text[1:]))

    parts = _RANGE_SEP_RE.split(text)
    if len(parts) == 2:
        low, high = _parse_count(parts[0]), _parse_count(parts[1])
        if low is not None and high is not None and low > high:
            low, high = high, low
        return ImpressionRange(min=low, max=high)

    value = _parse_count(text)
    return ImpressionRange(min=value, max=value)


def parse_percentage(text: Optional[str]) -> float:
    """'26%' -> 0.26, '< 1%' -> 0.005, anything unparseable -> 0.0."""
    if not text:
        return 0.0
    text = text.strip()
    if text.startswith("<"):
        return LESS_THAN_PERCENT
    match = _PERCENT_RE.search(text)
    if match:
        return int(match.group(1)) / 100
    return 0.0


def country_impressions(total: ImpressionRange, pct: float) -> ImpressionRange:
    # Each bound is scaled on its own; shares are not renormalized across countries.
    return ImpressionRange(
        min=round(total.min * pct) if total.min is not None else None,
        max=round(total.max * pct) if total.max is not None else None,
    )


def extract_profile_id(url: Optional[str]) -> Optional[str]:
    """Numeric company id or member slug from a profile URL."""
    if not url:
        return None
    match = _COMPANY_ID_RE.search(url)
    if match:
        return match.group(1)
    match = _MEMBER_ID_RE.search(url)
    if match:
        return match.group(1)
    return None


def clean_tracking_url(url: Optional[str], params: Iterable[str] = TRACKING_PARAMS) -> str:
    """Drop tracking query parameters, keeping the others byte-for-byte."""
    if not url:
        return url or ""
    drop = set(params)
    base, sep, rest = url.partition("?")
    if not sep:
        return url
    query, hash_sep, fragment = rest.partition("#")
    kept = [seg for seg in query.split("&") if seg and seg.split("=", 1)[0] not in drop]
    cleaned = base
    if kept:
        cleaned += "?" + "&".join(kept)
    if hash_sep:
        cleaned += "#" + fragment
    return cleaned


def ensure_absolute_url(url: Optional[str], base_url: str) -> str:
    """Resolve protocol-relative, absolute-path and bare-relative URLs against ``base_url``'s origin."""
    if not url:
        return ""
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    base = urlsplit(base_url)
    if url.startswith("//"):
        return f"{base.scheme or 'https'}:{url}"
    if not base.scheme or not base.netloc:
        return url
    origin = f"{base.scheme}://{base.netloc}"
    if url.startswith("/"):
        return origin + url
    return f"{origin}/{url}"


def extract_ad_id(url: str) -> str:
    """Final path segment of a detail URL, without query or fragment."""
    path = urlsplit(url).path.rstrip("/")
    ad_id = path.rsplit("/", 1)[-1] if path else ""
    return ad_id or "unknown"


def clean_cursor(raw: object) -> Optional[str]:
    """Strip a trailing '#fragment' from a pagination token. Non-strings yield None."""
    if raw is None:
        return None
    token = str(raw).strip()
    if "#" in token:
        token = token.split("#", 1)[0]
    return token or None


def is_end_of_list(cursor: Optional[str]) -> bool:
    # "0" ends pagination regardless of isLastPage; the upstream contract is unconfirmed.
    return cursor is None or cursor == END_OF_LIST_CURSOR


def content_fingerprint(html: str) -> str:
    """Short digest of the document with volatile tokens (ids, dates, hashes) masked."""
    normalized = html
    for pattern, replacement in _FINGERPRINT_RULES:
        normalized = pattern.sub(replacement, normalized)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def parse_count_text(text: str) -> Optional[int]:
    """'1,234 ads match your search' -> 1234."""
    match = re.search(r"(\d[\d,]*)\s+(?:ads|results)", text, re.IGNORECASE)
    if not match:
        return None
    return int(match.group(1).replace(",", ""))
