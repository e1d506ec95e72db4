# crmsync/service_layer/advisory_cache.py
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings, settings as default_settings
from ..domain.snapshots import ensure_aware_utc, utcnow
from .unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)

RESULT = "result"
RECENT = "recent"
RATE_LIMIT = "rate_limit"
DEDUPE = "dedupe"


@dataclass(frozen=True)
class AdvisoryRequest:
    tenant_id: str
    entity_id: str
    stage_key: str
    params: Mapping[str, Any]

    def fingerprint(self) -> str:
        """Stable hash of the normalised request; None-valued params do not count."""
        body = {
            "tenant": self.tenant_id.strip(),
            "entity": self.entity_id.strip(),
            "stage": self.stage_key.strip().lower(),
            "params": {k: v for k, v in sorted((self.params or {}).items()) if v is not None},
        }
        raw = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @property
    def stage_scope(self) -> str:
        return f"{self.tenant_id}/{self.entity_id}/{self.stage_key.strip().lower()}"

    @property
    def entity_scope(self) -> str:
        return f"{self.tenant_id}/{self.entity_id}"


@dataclass(frozen=True)
class CacheWindow:
    name: str
    ttl: timedelta
    scope: Callable[[AdvisoryRequest], str]
    flags: tuple[str, ...] = ()
    # annotates a hit from an earlier window too, while itself fresh
    sticky: bool = False


def default_windows(cfg: Settings | None = None) -> tuple[CacheWindow, ...]:
    """Lookup order is the tuple order. The dedupe window is sticky."""
    cfg = cfg or default_settings
    return (
        CacheWindow(RESULT, timedelta(seconds=cfg.ADVISORY_RESULT_TTL_S), lambda r: r.fingerprint()),
        CacheWindow(RECENT, timedelta(seconds=cfg.ADVISORY_RECENT_TTL_S), lambda r: r.stage_scope, ("recent",)),
        CacheWindow(
            RATE_LIMIT,
            timedelta(seconds=cfg.ADVISORY_RATE_LIMIT_TTL_S),
            lambda r: r.entity_scope,
            ("rateLimited",),
        ),
        CacheWindow(
            DEDUPE,
            timedelta(seconds=cfg.ADVISORY_DEDUPE_TTL_S),
            lambda r: r.stage_scope,
            ("deduped",),
            sticky=True,
        ),
    )


@dataclass(frozen=True)
class CacheHit:
    window: CacheWindow
    payload: dict[str, Any]
    written_at: datetime
    flags: tuple[str, ...] = ()


class AdvisoryCache:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        windows: tuple[CacheWindow, ...] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_maker = session_maker
        self.windows = windows or default_windows()
        self.clock = clock

    def _fresh(self, written_at: datetime, ttl: timedelta) -> bool:
        return self.clock() - ensure_aware_utc(written_at) < ttl

    async def lookup(self, req: AdvisoryRequest) -> CacheHit | None:
        """
        First fresh entry in window order, else None. Expired entries are just ignored.
        Sticky windows later in the order still add their flags while fresh.
        """
        async with SqlAlchemyUnitOfWork(self.session_maker) as uow:
            hit: CacheHit | None = None
            flags: list[str] = []
            for w in self.windows:
                if hit is not None and not w.sticky:
                    continue
                row = await uow.advisory.get(w.name, w.scope(req))
                if row is None or not self._fresh(row.written_at, w.ttl):
                    continue
                flags.extend(f for f in w.flags if f not in flags)
                if hit is None:
                    hit = CacheHit(window=w, payload=dict(row.payload or {}), written_at=row.written_at)
        if hit is None:
            return None
        return CacheHit(window=hit.window, payload=hit.payload, written_at=hit.written_at, flags=tuple(flags))

    async def store(self, req: AdvisoryRequest, payload: Mapping[str, Any]) -> None:
        """Same payload and timestamp into every window."""
        at = self.clock()
        async with SqlAlchemyUnitOfWork(self.session_maker) as uow:
            for w in self.windows:
                await uow.advisory.put(w.name, w.scope(req), payload, at=at)
        log.debug("advisory cached scope=%s windows=%d", req.stage_scope, len(self.windows))
