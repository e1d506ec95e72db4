# crmsync/service_layer/best_effort.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Generic, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(aw: Awaitable[T], *, label: str, default: T | None = None) -> T | None:
    """Await `aw`; on any failure log it and return `default`. Cancellation still propagates."""
    try:
        return await aw
    except asyncio.CancelledError:
        raise
    except Exception as e:
        log.warning("best-effort step %s failed: %s: %s", label, type(e).__name__, e)
        return default


class BestEffortTask(Generic[T]):
    """
    Starts a non-gating side computation now and lets the caller collect it later.
    `result()` never raises for task failures.
    """

    def __init__(self, aw: Awaitable[T], *, label: str, default: T | None = None) -> None:
        self.label = label
        self.default = default
        self._task: asyncio.Task[Any] = asyncio.ensure_future(best_effort(aw, label=label, default=default))

    async def result(self) -> T | None:
        return await self._task
