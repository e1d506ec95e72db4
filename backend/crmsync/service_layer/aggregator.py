# crmsync/service_layer/aggregator.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Protocol

from ..adapters.clients.web_text import content_hash
from ..domain.errors import SourceUnavailable
from ..domain.snapshots import utcnow
from ..domain.text import collapse_ws, truncate

log = logging.getLogger(__name__)

SOURCE_NAMES: tuple[str, ...] = ("website", "social", "jobs")


class TextSource(Protocol):
    async def fetch_text_source(self, url: str) -> str: ...


@dataclass(frozen=True)
class SourceDescriptor:
    name: str
    url: str | None = None


@dataclass(frozen=True)
class SourceText:
    name: str
    text: str = ""
    content_hash: str = ""
    url: str | None = None
    fetched_at: datetime | None = None
    error: str | None = None

    @property
    def has_text(self) -> bool:
        return bool(self.text)


@dataclass
class AggregatedSources:
    sources: dict[str, SourceText] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=utcnow)

    @property
    def any_signal(self) -> bool:
        return any(s.has_text for s in self.sources.values())

    def text(self, name: str) -> str:
        s = self.sources.get(name)
        return s.text if s else ""

    def texts(self) -> dict[str, str]:
        return {name: s.text for name, s in self.sources.items()}

    def hashes(self) -> dict[str, str]:
        return {name: s.content_hash for name, s in self.sources.items() if s.content_hash}

    def urls(self) -> dict[str, str | None]:
        return {name: s.url for name, s in self.sources.items()}

    def unchanged_since(self, previous_hashes: Mapping[str, str] | None) -> list[str]:
        """Sources whose non-empty content hash matches the previous snapshot."""
        prev = previous_hashes or {}
        return sorted(
            name
            for name, s in self.sources.items()
            if s.content_hash and prev.get(name) == s.content_hash
        )


async def _fetch_one(fetcher: TextSource, desc: SourceDescriptor, max_chars: int) -> SourceText:
    if not desc.url:
        return SourceText(name=desc.name, url=None)
    try:
        raw = await fetcher.fetch_text_source(desc.url)
    except SourceUnavailable as e:
        log.info("source %s unavailable: %s", desc.name, e.reason)
        return SourceText(name=desc.name, url=desc.url, error=e.reason)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        log.warning("source %s fetch failed: %s: %s", desc.name, type(e).__name__, e)
        return SourceText(name=desc.name, url=desc.url, error=type(e).__name__)

    text = truncate(collapse_ws(raw or ""), max_chars)
    if not text:
        return SourceText(name=desc.name, url=desc.url, error="empty")
    return SourceText(
        name=desc.name,
        text=text,
        content_hash=content_hash(text),
        url=desc.url,
        fetched_at=utcnow(),
    )


async def aggregate_sources(
    fetcher: TextSource,
    descriptors: list[SourceDescriptor],
    *,
    max_chars: int,
) -> AggregatedSources:
    """
    Fetch every descriptor concurrently. A failure only empties that source;
    the result always has one entry per descriptor.
    """
    results = await asyncio.gather(*(_fetch_one(fetcher, d, max_chars) for d in descriptors))
    return AggregatedSources(sources={r.name: r for r in results}, fetched_at=utcnow())
