# crmsync/service_layer/jobruns.py
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.snapshots import utcnow
from ..models import JobRun, JobRunStatus


async def start_job(session: AsyncSession, job_name: str, meta: dict[str, Any] | None = None) -> JobRun:
    jr = JobRun(
        job_name=job_name,
        started_at=utcnow(),
        status=JobRunStatus.running,
        meta_json=json.dumps(meta or {}),
    )
    session.add(jr)
    await session.flush()
    return jr


async def finish_job_success(session: AsyncSession, jr: JobRun, summary: dict[str, Any]) -> None:
    jr.status = JobRunStatus.success
    jr.finished_at = utcnow()
    jr.summary_json = json.dumps(summary, default=str)
    jr.error = None
    await session.flush()


async def finish_job_fail(session: AsyncSession, jr: JobRun, err: Exception) -> None:
    jr.status = JobRunStatus.failed
    jr.finished_at = utcnow()
    jr.error = f"{type(err).__name__}: {err}"
    await session.flush()


async def latest_runs(session: AsyncSession, job_name: str | None = None, limit: int = 20) -> list[JobRun]:
    q = select(JobRun)
    if job_name:
        q = q.where(JobRun.job_name == job_name)
    q = q.order_by(JobRun.started_at.desc()).limit(max(1, int(limit)))
    return list((await session.execute(q)).scalars().all())
