# crmsync/jobs/scheduler.py
from __future__ import annotations

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import settings
from ..db import get_session_maker
from ..service_layer.dependencies import build_enrichment_deps
from .enrichment import run_weekly_enrichment

log = logging.getLogger(__name__)


async def _run_weekly() -> None:
    deps = build_enrichment_deps(get_session_maker())
    try:
        await run_weekly_enrichment(deps)
    except Exception:
        log.exception("weekly enrichment job crashed")


def build_scheduler() -> AsyncIOScheduler:
    sched = AsyncIOScheduler(timezone="UTC")

    # weekly refresh (default Sunday 02:00 UTC)
    sched.add_job(
        lambda: asyncio.create_task(_run_weekly()),
        "cron",
        day_of_week=settings.SCHED_ENRICH_DAY_OF_WEEK,
        hour=settings.SCHED_ENRICH_HOUR,
        minute=0,
        id="enrichment_weekly",
        replace_existing=True,
    )

    return sched
