# crmsync/adapters/repos/advisory_cache.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import AdvisoryCacheEntry


class AdvisoryCacheRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, window: str, scope_key: str) -> AdvisoryCacheEntry | None:
        q = select(AdvisoryCacheEntry).where(
            AdvisoryCacheEntry.window == window,
            AdvisoryCacheEntry.scope_key == scope_key,
        )
        return (await self.session.execute(q)).scalars().first()

    async def put(self, window: str, scope_key: str, payload: Mapping[str, Any], *, at: datetime) -> AdvisoryCacheEntry:
        """Full overwrite of the entry; there are no partial updates."""
        row = await self.get(window, scope_key)
        if row is None:
            row = AdvisoryCacheEntry(window=window, scope_key=scope_key)
            self.session.add(row)
        row.payload = dict(payload)
        row.written_at = at
        await self.session.flush()
        return row
