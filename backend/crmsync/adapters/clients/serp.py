# crmsync/adapters/clients/serp.py
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

from ...config import settings
from ...domain.errors import ProviderError
from ...domain.fields import sanitize_url
from .http_resilience import ResilientHttp

log = logging.getLogger(__name__)

_SOCIAL_HOSTS = ("linkedin.com",)
_JOB_HOSTS = ("indeed.com", "glassdoor.com", "ziprecruiter.com", "monster.com", "simplyhired.com")
_SKIP_FOR_WEBSITE = _SOCIAL_HOSTS + _JOB_HOSTS + (
    "facebook.com",
    "twitter.com",
    "x.com",
    "wikipedia.org",
    "crunchbase.com",
    "bloomberg.com",
    "yelp.com",
)


def _host(url: str) -> str:
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def _matches(host: str, candidates: tuple[str, ...]) -> bool:
    return any(host == c or host.endswith(f".{c}") for c in candidates)


def classify_results(links: list[str]) -> dict[str, str]:
    """First plausible website, LinkedIn company page and jobs page among organic result links."""
    found: dict[str, str] = {}
    for raw in links:
        url = sanitize_url(raw)
        if not url:
            continue
        host = _host(url)
        if not host:
            continue
        if "social" not in found and _matches(host, _SOCIAL_HOSTS) and "/company/" in url:
            found["social"] = url
        elif "jobs" not in found and _matches(host, _JOB_HOSTS):
            found["jobs"] = url
        elif "website" not in found and not _matches(host, _SKIP_FOR_WEBSITE):
            found["website"] = url
    return found


class SerpUrlDiscovery:
    """Search-API backed discovery of website / LinkedIn / jobs URLs for a company name."""

    name = "serp"

    def __init__(self, http: ResilientHttp | None = None, *, base_url: str | None = None) -> None:
        self.http = http or ResilientHttp("serp")
        self.base_url = base_url or settings.SERP_BASE_URL

    async def _search(self, query: str, api_key: str) -> list[str]:
        params: dict[str, Any] = {"engine": "google", "q": query, "num": 10, "api_key": api_key}
        try:
            resp = await self.http.request("GET", self.base_url, params=params)
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"serp search failed: {type(e).__name__}") from e
        results = body.get("organic_results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            return []
        return [str(r.get("link")) for r in results if isinstance(r, dict) and r.get("link")]

    async def discover(self, company_name: str, api_key: str) -> dict[str, str]:
        name = (company_name or "").strip()
        if not name or not api_key:
            return {}

        found = classify_results(await self._search(name, api_key))
        if "jobs" not in found:
            jobs = classify_results(await self._search(f"{name} jobs", api_key)).get("jobs")
            if jobs:
                found["jobs"] = jobs
        log.info("url discovery company=%r found=%s", name, sorted(found))
        return found
