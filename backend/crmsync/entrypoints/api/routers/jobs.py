# crmsync/entrypoints/api/routers/jobs.py
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_deps, require_api_key
from ....db import get_session
from ....jobs.enrichment import run_weekly_enrichment
from ....service_layer.dependencies import EnrichmentDeps
from ....service_layer.jobruns import latest_runs

router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[Depends(require_api_key)])


@router.post("/enrichment/weekly")
async def jobs_weekly_enrichment(
    weekly_cap: int | None = Query(None, ge=1, le=5000),
    deps: EnrichmentDeps = Depends(get_deps),
) -> dict[str, Any]:
    # records its own JobRun row
    return await run_weekly_enrichment(deps, weekly_cap=weekly_cap)


@router.get("/runs")
async def jobs_runs(
    job_name: str | None = Query(None),
    limit: int = Query(20, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    runs = await latest_runs(session, job_name=job_name, limit=limit)
    return [
        {
            "id": r.id,
            "job_name": r.job_name,
            "status": r.status.value,
            "started_at": r.started_at.isoformat() if r.started_at else None,
            "finished_at": r.finished_at.isoformat() if r.finished_at else None,
            "error": r.error,
            "summary": json.loads(r.summary_json) if r.summary_json else None,
        }
        for r in runs
    ]
