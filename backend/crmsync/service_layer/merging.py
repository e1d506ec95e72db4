# crmsync/service_layer/merging.py
from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..domain.errors import ConcurrentUpdateError, PersistenceError
from .unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)

T = TypeVar("T")


async def with_merge_retry(
    session_maker: async_sessionmaker[AsyncSession],
    op: Callable[[SqlAlchemyUnitOfWork], Awaitable[T]],
    *,
    label: str,
    attempts: int | None = None,
) -> T:
    """
    Run a read-modify-write in a fresh unit of work. A version conflict re-runs the whole
    op against a fresh read; other persistence errors surface immediately.
    """
    max_attempts = max(1, int(settings.MERGE_MAX_ATTEMPTS if attempts is None else attempts))
    last: ConcurrentUpdateError | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            async with SqlAlchemyUnitOfWork(session_maker) as uow:
                return await op(uow)
        except ConcurrentUpdateError as e:
            last = e
            log.info("%s: concurrent update (attempt %d/%d), re-reading", label, attempt, max_attempts)
    raise PersistenceError(f"{label}: gave up after {max_attempts} concurrent-update retries") from last
