from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class WorkKind(str, Enum):
    LISTING = "LISTING"
    DETAIL = "DETAIL"


# Higher runs first. LISTING always outranks DETAIL.
PRIORITY = {
    WorkKind.LISTING: 10,
    WorkKind.DETAIL: 0,
}


class CreativeType(str, Enum):
    VIDEO = "VIDEO"
    CAROUSEL = "CAROUSEL"
    DOCUMENT = "DOCUMENT"
    EVENT = "EVENT"
    MESSAGE = "MESSAGE"
    SINGLE_IMAGE = "SINGLE_IMAGE"
    TEXT = "TEXT"
    FOLLOW_COMPANY = "FOLLOW_COMPANY"
    SPOTLIGHT = "SPOTLIGHT"
    JOB = "JOB"
    UNKNOWN = "UNKNOWN"


class PromotionType(str, Enum):
    COMPANY = "COMPANY"
    THOUGHT_LEADERSHIP = "THOUGHT_LEADERSHIP"


class ErrorKind(str, Enum):
    TRANSPORT = "TRANSPORT"
    RATE_LIMITED = "RATE_LIMITED"
    BLOCKED = "BLOCKED"
    NOT_FOUND = "NOT_FOUND"
    STRUCTURE_MISMATCH = "STRUCTURE_MISMATCH"
    UNEXPECTED = "UNEXPECTED"


class IdentityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETIRED = "RETIRED"


class BackoffMode(str, Enum):
    NORMAL = "NORMAL"
    BACKOFF = "BACKOFF"


@dataclass(frozen=True)
class WorkItem:
    """A unit of crawl work.

    ``key`` is the dedup key: the ad id for DETAIL items and the cleaned
    pagination cursor for LISTING items."""

    kind: WorkKind
    url: str
    key: str
    attempts: int = 0

    @property
    def priority(self) -> int:
        return PRIORITY[self.kind]

    @property
    def unique_key(self) -> str:
        return f"{self.kind.value.lower()}_{self.key}"

    def next_attempt(self) -> "WorkItem":
        return WorkItem(kind=self.kind, url=self.url, key=self.key, attempts=self.attempts + 1)

    @classmethod
    def listing(cls, url: str, cursor: str) -> "WorkItem":
        return cls(kind=WorkKind.LISTING, url=url, key=cursor)

    @classmethod
    def detail(cls, url: str, ad_id: str) -> "WorkItem":
        return cls(kind=WorkKind.DETAIL, url=url, key=ad_id)


@dataclass(frozen=True)
class FetchResponse:
    url: str
    status_code: int
    body: str
    latency_ms: int = 0
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= int(self.status_code) < 300


@dataclass(frozen=True)
class Outcome:
    """Result of handling one WorkItem; the crawler decides requeue-vs-drop from ``error_kind``."""

    item: WorkItem
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, item: WorkItem, status_code: Optional[int] = None) -> "Outcome":
        return cls(item=item, status_code=status_code)

    @classmethod
    def failure(
        cls,
        item: WorkItem,
        error_kind: ErrorKind,
        message: str = "",
        status_code: Optional[int] = None,
    ) -> "Outcome":
        return cls(item=item, error_kind=error_kind, message=message, status_code=status_code)


@dataclass(frozen=True)
class FetchEvent:
    url: str
    success: bool
    status_code: Optional[int]
    latency_ms: int
    error_type: Optional[str]


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_requests: int
    success_count: int
    timeout_count: int
    conn_error_count: int
    http_429_count: int
    http_403_count: int
    ip_ban_suspected_count: int
    avg_latency_ms: float
    timestamp: float
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    queue_depth: int = 0


@dataclass(frozen=True)
class Checkpoint:
    total_ads_available: int
    ads_collected: int
    details_collected: int
    account_owner: str
    keyword: str
    timestamp: str
    duration_seconds: Optional[float] = None
    failures: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "totalAdsAvailable": self.total_ads_available,
            "adsCollected": self.ads_collected,
            "detailsCollected": self.details_collected,
            "accountOwner": self.account_owner,
            "keyword": self.keyword,
            "timestamp": self.timestamp,
        }
        if self.duration_seconds is not None:
            data["durationSeconds"] = self.duration_seconds
        if self.failures:
            data["failures"] = dict(self.failures)
        return data


# --- AdRecord and its parts -------------------------------------------------


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class Advertiser:
    name: str = ""
    profile_url: str = ""
    profile_id: str = ""
    logo_url: Optional[str] = None
    paid_by: Optional[str] = None


@dataclass
class Promoter:
    name: str = ""
    headline: Optional[str] = None
    profile_url: str = ""
    profile_id: str = ""
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "promoterName": self.name,
            "promoterHeadline": self.headline,
            "promoterProfileUrl": self.profile_url,
            "promoterProfileId": self.profile_id,
            "promoterImageUrl": self.image_url,
        })


@dataclass
class CarouselItem:
    position: int
    title: Optional[str] = None
    image_url: Optional[str] = None
    image_alt: Optional[str] = None
    link_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "position": self.position,
            "title": self.title,
            "imageUrl": self.image_url,
            "imageAlt": self.image_alt,
            "linkUrl": self.link_url,
        })


@dataclass
class EventDetails:
    name: str = ""
    time: str = ""
    location: str = ""
    url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "time": self.time, "location": self.location, "url": self.url}


@dataclass
class MessageLink:
    text: str
    url: str


@dataclass
class MessageDetails:
    sender_name: str = ""
    body: str = ""
    links: List[MessageLink] = field(default_factory=list)
    cta_text: Optional[str] = None
    cta_url: Optional[str] = None
    button_cta_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "senderName": self.sender_name,
            "messageContent": self.body,
            "ctaText": self.cta_text,
            "ctaUrl": self.cta_url,
            "buttonCtaText": self.button_cta_text,
            "links": [{"text": link.text, "url": link.url} for link in self.links],
        })


@dataclass(frozen=True)
class ImpressionRange:
    min: Optional[int] = None
    max: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"min": self.min, "max": self.max})


@dataclass
class CountryImpression:
    country: str
    percentage: str
    percentage_value: float
    impressions_min: Optional[int] = None
    impressions_max: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "country": self.country,
            "percentage": self.percentage,
            "percentageValue": self.percentage_value,
            "impressionsMin": self.impressions_min,
            "impressionsMax": self.impressions_max,
        })


@dataclass
class Availability:
    start: str
    end: str


@dataclass
class Targeting:
    language: List[str] = field(default_factory=list)
    location_included: List[str] = field(default_factory=list)
    location_excluded: List[str] = field(default_factory=list)
    audience: Optional[str] = None
    job: Optional[str] = None
    company: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "language": list(self.language),
            "locationIncluded": list(self.location_included),
            "locationExcluded": list(self.location_excluded),
            "audienceTargeting": self.audience,
            "jobTargeting": self.job,
            "companyTargeting": self.company,
        })


@dataclass
class AdRecord:
    """One extracted advertisement. Never mutated after it is emitted."""

    ad_id: str
    detail_url: str
    captured_at: str
    fingerprint: str = ""
    advertiser: Advertiser = field(default_factory=Advertiser)
    promotion_type: PromotionType = PromotionType.COMPANY
    promoter: Optional[Promoter] = None
    creative_type: CreativeType = CreativeType.UNKNOWN

    # shared content
    ad_copy: Optional[str] = None
    headline: Optional[str] = None
    cta_text: Optional[str] = None
    click_url: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)

    # type-specific payload
    video_url: Optional[str] = None
    video_thumbnail_url: Optional[str] = None
    carousel_items: List[CarouselItem] = field(default_factory=list)
    document_url: Optional[str] = None
    document_title: Optional[str] = None
    event: Optional[EventDetails] = None
    event_url: Optional[str] = None
    message: Optional[MessageDetails] = None

    availability: Optional[Availability] = None
    impressions_raw: Optional[str] = None
    impressions: Optional[ImpressionRange] = None
    impressions_per_country: List[CountryImpression] = field(default_factory=list)
    targeting: Optional[Targeting] = None

    diagnostics: List[str] = field(default_factory=list)
    error_note: Optional[str] = None

    def add_image(self, url: Optional[str]) -> None:
        if url and url not in self.image_urls:
            self.image_urls.append(url)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the external one-record-per-ad shape."""
        data: Dict[str, Any] = {
            "adId": self.ad_id,
            "adDetailUrl": self.detail_url,
            "capturedAt": self.captured_at,
            "htmlVersion": self.fingerprint,
            "advertiserName": self.advertiser.name,
            "advertiserProfileUrl": self.advertiser.profile_url,
            "advertiserProfileId": self.advertiser.profile_id,
            "advertiserLogoUrl": self.advertiser.logo_url,
            "paidBy": self.advertiser.paid_by,
            "adType": self.creative_type.value,
            "promotionType": self.promotion_type.value,
            "promoterDetails": self.promoter.to_dict() if self.promoter else None,
            "adCopy": self.ad_copy,
            "headline": self.headline,
            "ctaText": self.cta_text,
            "clickUrl": self.click_url,
            "imageUrl": self.image_url,
            "imageUrls": list(self.image_urls) or None,
            "videoUrl": self.video_url,
            "videoThumbnailUrl": self.video_thumbnail_url,
            "carouselItems": [c.to_dict() for c in self.carousel_items] or None,
            "documentUrl": self.document_url,
            "documentTitle": self.document_title,
            "eventDetails": self.event.to_dict() if self.event else None,
            "eventUrl": self.event_url,
            "messageDetails": self.message.to_dict() if self.message else None,
            "availability": (
                {"start": self.availability.start, "end": self.availability.end} if self.availability else None
            ),
            "totalImpressionsRaw": self.impressions_raw,
            "totalImpressions": self.impressions.to_dict() if self.impressions else None,
            "impressionsPerCountry": [c.to_dict() for c in self.impressions_per_country] or None,
            "targeting": self.targeting.to_dict() if self.targeting else None,
            "diagnostics": list(self.diagnostics) or None,
            "errorDuringScraping": self.error_note,
        }
        return _compact(data)
