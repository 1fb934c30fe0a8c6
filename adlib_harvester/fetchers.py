from __future__ import annotations

import time as _time
from typing import Any, Dict, Optional

from curl_cffi import requests as curl_requests
import requests

from .base import BaseFetcher
from .identity import Identity
from .models import FetchResponse


def _cookie_dict(jar: Any) -> Dict[str, str]:
    if jar is None:
        return {}
    return {str(k): str(v) for k, v in jar.items()}


class CurlFetcher(BaseFetcher):
    """Browser-impersonating transport (curl_cffi, Chrome TLS fingerprint)."""

    impersonate = "chrome120"

    def _request(self, url: str, identity: Optional[Identity]) -> FetchResponse:
        start = _time.time()
        session = curl_requests.Session()
        try:
            response = session.request(
                method="GET",
                url=url,
                impersonate=self.impersonate,
                timeout=self._timeout,
                **self.request_kwargs(identity),
            )
        finally:
            session.close()
        return FetchResponse(
            url=url,
            status_code=int(response.status_code),
            body=response.text or "",
            latency_ms=int((_time.time() - start) * 1000),
            cookies=_cookie_dict(response.cookies),
        )


class RequestsFetcher(BaseFetcher):
    """Plain ``requests`` transport."""

    def _request(self, url: str, identity: Optional[Identity]) -> FetchResponse:
        start = _time.time()
        resp = requests.get(url, timeout=self._timeout, **self.request_kwargs(identity))
        return FetchResponse(
            url=url,
            status_code=int(resp.status_code),
            body=resp.text or "",
            latency_ms=int((_time.time() - start) * 1000),
            cookies=_cookie_dict(resp.cookies),
        )
