from __future__ import annotations

from typing import Optional


class ConfigError(ValueError):
    """Raised at startup when run parameters are unusable."""


class TransportError(Exception):
    """A fetch failed at the network level after the fetcher's own retries."""

    def __init__(self, url: str, reason: str, attempts: int = 1, status_code: Optional[int] = None) -> None:
        super().__init__(f"{reason} after {attempts} attempt(s): {url}")
        self.url = url
        self.reason = reason
        self.attempts = attempts
        self.status_code = status_code
