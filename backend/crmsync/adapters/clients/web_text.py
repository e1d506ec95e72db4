# crmsync/adapters/clients/web_text.py
from __future__ import annotations

import hashlib
import logging

import httpx
from bs4 import BeautifulSoup

from ...config import settings
from ...domain.errors import SourceUnavailable
from ...domain.fields import sanitize_url
from ...domain.text import collapse_ws, truncate
from .http_resilience import ResilientHttp

log = logging.getLogger(__name__)

STRIP_TAGS = ("script", "style", "noscript", "nav", "footer", "svg", "iframe")


def content_hash(text: str) -> str:
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def html_to_text(html: str, *, max_chars: int | None = None) -> str:
    """
    Visible page text: boilerplate tags dropped, whitespace collapsed, bounded.
    """
    limit = int(settings.SOURCE_MAX_CHARS if max_chars is None else max_chars)
    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup(list(STRIP_TAGS)):
        tag.decompose()
    text = collapse_ws(soup.get_text(" ", strip=True))
    return truncate(text, limit)


class HttpTextFetcher:
    """Fetches a page and returns its normalised visible text."""

    def __init__(self, http: ResilientHttp | None = None, *, max_chars: int | None = None) -> None:
        self.http = http or ResilientHttp("web")
        self.max_chars = int(settings.SOURCE_MAX_CHARS if max_chars is None else max_chars)

    async def fetch_text_source(self, url: str) -> str:
        clean = sanitize_url(url)
        if not clean:
            raise SourceUnavailable(url or "", "invalid url")

        headers = {
            "User-Agent": settings.SOURCE_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        }
        try:
            resp = await self.http.request("GET", clean, headers=headers)
        except httpx.HTTPError as e:
            raise SourceUnavailable(clean, f"{type(e).__name__}: {e}") from e

        ctype = (resp.headers.get("content-type") or "").lower()
        if "html" in ctype or "xml" in ctype or not ctype:
            text = html_to_text(resp.text, max_chars=self.max_chars)
        else:
            text = truncate(collapse_ws(resp.text), self.max_chars)

        log.debug("fetched %s chars=%d", clean, len(text))
        return text
