from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigError

LOCAL_JITTER_MS = (3000, 8000)
PARALLEL_JITTER_MS = (1000, 3000)

# External (camelCase) input keys -> CrawlConfig attributes.
INPUT_KEYS = {
    "accountOwner": "account_owner",
    "keyword": "keyword",
    "maxUrlsCount": "max_urls_count",
    "scrapeAdDetails": "scrape_ad_details",
    "minDetailDelay": "min_detail_delay",
    "maxDetailDelay": "max_detail_delay",
    "maxCrawlerConcurrency": "max_crawler_concurrency",
    "minCrawlerConcurrency": "min_crawler_concurrency",
    "debugMode": "debug_mode",
    "unlimitedMode": "unlimited_mode",
    "localMode": "local_mode",
    "maxRequestRetries": "max_request_retries",
    "identityMaxUsage": "identity_max_usage",
    "identityPoolSize": "identity_pool_size",
    "proxyUrls": "proxy_urls",
    "cookies": "cookies",
    "fetcher": "fetcher",
    "placeholderSignatures": "placeholder_signatures",
    "outputPath": "output_path",
    "checkpointPath": "checkpoint_path",
    "identityStatePath": "identity_state_path",
}


@dataclass
class CrawlConfig:
    account_owner: str = ""
    keyword: str = ""
    max_urls_count: int = 500
    scrape_ad_details: bool = True
    min_detail_delay: Optional[int] = None
    max_detail_delay: Optional[int] = None
    max_crawler_concurrency: int = 10
    min_crawler_concurrency: int = 2
    debug_mode: bool = False
    unlimited_mode: bool = False
    local_mode: bool = False
    max_request_retries: int = 5
    identity_max_usage: int = 100
    identity_pool_size: Optional[int] = None
    proxy_urls: List[str] = field(default_factory=list)
    cookies: str = ""
    fetcher: str = "curl"
    placeholder_signatures: List[str] = field(default_factory=list)
    output_path: str = "ads.jsonl"
    checkpoint_path: Optional[str] = "scrape_metadata.json"
    identity_state_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlConfig":
        unknown = sorted(set(data) - set(INPUT_KEYS))
        if unknown:
            raise ConfigError(f"Unknown input keys: {', '.join(unknown)}")
        return cls(**{INPUT_KEYS[k]: v for k, v in data.items() if v is not None})

    @classmethod
    def from_json_file(cls, path: str) -> "CrawlConfig":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot read input file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Input file {path} must hold a JSON object")
        return cls.from_dict(data)

    def merged(self, overrides: Dict[str, Any]) -> "CrawlConfig":
        """Copy with every non-None override applied."""
        names = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if key in names and value is not None:
                values[key] = value
        return CrawlConfig(**values)

    @property
    def jitter_window(self) -> Tuple[int, int]:
        low, high = LOCAL_JITTER_MS if self.local_mode else PARALLEL_JITTER_MS
        return (
            self.min_detail_delay if self.min_detail_delay is not None else low,
            self.max_detail_delay if self.max_detail_delay is not None else high,
        )

    @property
    def concurrency_bounds(self) -> Tuple[int, int]:
        if self.local_mode:
            return 1, 1
        return min(self.min_crawler_concurrency, self.max_crawler_concurrency), self.max_crawler_concurrency

    @property
    def pool_size(self) -> int:
        return self.identity_pool_size or self.max_crawler_concurrency * 20

    def validate(self) -> "CrawlConfig":
        if not (self.account_owner or "").strip() and not (self.keyword or "").strip():
            raise ConfigError("You must provide either accountOwner (company name) or keyword to search for ads.")
        for name in ("max_urls_count", "max_crawler_concurrency", "min_crawler_concurrency",
                     "max_request_retries", "identity_max_usage", "pool_size"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be a positive integer")
        low, high = self.jitter_window
        if low < 0 or high < low:
            raise ConfigError(f"Invalid detail delay window: [{low}, {high}] ms")
        if self.fetcher not in ("curl", "requests"):
            raise ConfigError(f"Unknown fetcher: {self.fetcher}")
        return self
