"""
httpx-backed page transport.

Fetches with a persistent cookie jar, measures time to first byte, and
transparently follows ``<meta http-equiv="Refresh">`` redirects, which the
site uses between sign-in steps.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from bidsnipr.core import Page, Transport, TransportError

log = logging.getLogger("bidsnipr.http")

# Responses meaning "come back later" rather than "this is broken".
UNAVAILABLE_STATUS = frozenset({429, 502, 503, 504})
MAX_REFRESHES = 5

_REFRESH_RE = re.compile(r"^\s*refresh\s*$", re.I)
_REFRESH_URL_RE = re.compile(r"url\s*=\s*['\"]?([^'\"]+)", re.I)


def meta_refresh_target(content: bytes, base_url: str) -> Optional[str]:
    """Absolute URL of a meta refresh in ``content``, or None."""
    if b"http-equiv" not in content.lower():
        return None
    soup = BeautifulSoup(content, "html.parser")
    meta = soup.find("meta", attrs={"http-equiv": _REFRESH_RE})
    if meta is None:
        return None
    m = _REFRESH_URL_RE.search(meta.get("content", ""))
    if not m:
        return None
    return urljoin(base_url, m.group(1).strip())


class HttpTransport(Transport):
    def __init__(
        self,
        *,
        headers: Optional[dict[str, str]] = None,
        proxy: Optional[str] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.headers = headers or {}
        self.proxy = proxy
        self.timeout = timeout
        self.clock = clock
        self._transport = transport
        self._client = self._new_client()

    def _new_client(self) -> httpx.Client:
        return httpx.Client(
            follow_redirects=True,
            timeout=self.timeout,
            headers=self.headers,
            proxy=self.proxy,
            transport=self._transport,
        )

    def reset(self) -> None:
        self._client.close()
        self._client = self._new_client()

    def close(self) -> None:
        self._client.close()

    # ---------------- HTTP ---------------- #

    def fetch(self, url: str, log_url: Optional[str] = None) -> Page:
        shown = log_url or url
        for _ in range(MAX_REFRESHES + 1):
            page, status = self._get(url, shown)
            if status in UNAVAILABLE_STATUS:
                raise TransportError(shown, f"HTTP {status}", unavailable=True)
            if status >= 400:
                raise TransportError(shown, f"HTTP {status}")
            target = meta_refresh_target(page.content, page.url)
            if target is None:
                return page
            log.debug("following meta refresh to %s", target)
            url = shown = target
        raise TransportError(shown, "too many meta refreshes")

    def _get(self, url: str, shown: str) -> tuple[Page, int]:
        log.debug("GET %s", shown)
        first_byte = None
        chunks: list[bytes] = []
        try:
            with self._client.stream("GET", url) as r:
                for chunk in r.iter_bytes():
                    if first_byte is None:
                        first_byte = self.clock()
                    chunks.append(chunk)
                status = r.status_code
                final_url = str(r.url)
        except httpx.HTTPError as exc:
            raise TransportError(shown, str(exc) or type(exc).__name__) from exc
        return Page(b"".join(chunks), final_url, first_byte), status
