from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .models import IdentityStatus


def parse_cookie_header(raw: str) -> Dict[str, str]:
    """'a=1; b=2' -> {'a': '1', 'b': '2'}; malformed pairs are skipped."""
    cookies: Dict[str, str] = {}
    for pair in (raw or "").split(";"):
        part = pair.strip()
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        cookies[k.strip()] = v.strip()
    return cookies


@dataclass
class Identity:
    """One rotating client identity: a cookie jar plus an egress proxy."""

    identity_id: str
    proxy_url: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    usage_count: int = 0
    status: IdentityStatus = IdentityStatus.ACTIVE

    @property
    def active(self) -> bool:
        return self.status == IdentityStatus.ACTIVE

    def to_dict(self) -> Dict:
        return {
            "id": self.identity_id,
            "proxyUrl": self.proxy_url,
            "cookies": dict(self.cookies),
            "usageCount": self.usage_count,
        }


class IdentityPool:
    """Bounded pool of identities, created lazily and retired for good.

    ``acquire`` hands out a fresh identity while fewer than ``max_size`` are
    live, and the least-used live one after that. Retired identities leave
    the pool and are never handed out again; their slot is refilled by a new
    identity with a new id. Proxies are assigned round-robin at creation.
    """

    def __init__(
        self,
        max_size: int,
        max_usage: int = 100,
        proxy_urls: Sequence[str] = (),
        seed_cookies: Optional[Dict[str, str]] = None,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._max_usage = max_usage
        self._proxies = list(proxy_urls)
        self._seed = dict(seed_cookies or {})
        self._lock = threading.Lock()
        self._live: List[Identity] = []
        self._created = 0
        self._retired = 0

    def acquire(self) -> Identity:
        with self._lock:
            if len(self._live) < self._max_size:
                return self._create()
            return min(self._live, key=lambda ident: ident.usage_count)

    def retire(self, identity: Identity, reason: str = "blocked") -> None:
        with self._lock:
            if not identity.active:
                return
            identity.status = IdentityStatus.RETIRED
            self._live = [ident for ident in self._live if ident is not identity]
            self._retired += 1
        logger.warning("Identity {} retired ({}, {} uses)", identity.identity_id, reason, identity.usage_count)

    def record_use(self, identity: Identity) -> None:
        with self._lock:
            identity.usage_count += 1
            exhausted = identity.active and identity.usage_count >= self._max_usage
        if exhausted:
            self.retire(identity, reason="usage ceiling")

    def absorb_cookies(self, identity: Identity, cookies: Dict[str, str]) -> None:
        if not cookies:
            return
        with self._lock:
            identity.cookies.update(cookies)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._live)

    @property
    def retired_count(self) -> int:
        with self._lock:
            return self._retired

    def save(self, path: str) -> None:
        """Persist live identities as JSON (write-then-rename)."""
        with self._lock:
            data = {"created": self._created, "identities": [ident.to_dict() for ident in self._live]}
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
        logger.info("Saved {} identities to {}", len(data["identities"]), path)

    def load(self, path: str) -> int:
        """Restore live identities saved by ``save``. Returns how many were loaded."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return 0
        loaded = []
        for raw in data.get("identities", []):
            if len(loaded) >= self._max_size:
                break
            usage = int(raw.get("usageCount", 0))
            if usage >= self._max_usage:
                continue
            loaded.append(Identity(
                identity_id=str(raw["id"]),
                proxy_url=raw.get("proxyUrl"),
                cookies=dict(raw.get("cookies") or {}),
                usage_count=usage,
            ))
        with self._lock:
            self._live = loaded
            self._created = max(self._created, int(data.get("created", 0)), len(loaded))
        logger.info("Loaded {} identities from {}", len(loaded), path)
        return len(loaded)

    def _create(self) -> Identity:
        proxy = self._proxies[self._created % len(self._proxies)] if self._proxies else None
        self._created += 1
        identity = Identity(identity_id=f"identity_{self._created}", proxy_url=proxy, cookies=dict(self._seed))
        self._live.append(identity)
        logger.debug("Identity {} created (proxy={})", identity.identity_id, proxy)
        return identity
