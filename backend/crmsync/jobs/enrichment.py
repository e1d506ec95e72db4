# crmsync/jobs/enrichment.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from ..config import settings
from ..domain.errors import InputValidationError
from ..domain.snapshots import utcnow
from ..models import JobRun
from ..service_layer.dependencies import EnrichmentDeps
from ..service_layer.jobruns import finish_job_fail, finish_job_success, start_job
from ..service_layer.unit_of_work import SqlAlchemyUnitOfWork
from ..service_layer.use_cases.enrich_company import MODE_FULL, MODE_METADATA, normalize_mode, run_enrichment

log = logging.getLogger(__name__)

WEEKLY_JOB = "enrichment_weekly"
TENANT_BATCH_JOB = "enrichment_tenant_batch"


def per_tenant_cap(weekly_cap: int) -> int:
    return max(10, min(50, int(weekly_cap) // 4))


async def _open_run(deps: EnrichmentDeps, name: str, meta: dict[str, Any]) -> int:
    async with deps.session_maker() as session:
        jr = await start_job(session, name, meta)
        await session.commit()
        return jr.id


async def _close_run(deps: EnrichmentDeps, run_id: int, *, summary: dict[str, Any] | None = None, err: Exception | None = None) -> None:
    async with deps.session_maker() as session:
        jr = await session.get(JobRun, run_id)
        if jr is None:
            return
        if err is not None:
            await finish_job_fail(session, jr, err)
        else:
            await finish_job_success(session, jr, summary or {})
        await session.commit()


async def _weekly_plan(
    deps: EnrichmentDeps,
    *,
    weekly_cap: int,
    staleness_days: int,
    max_tenants: int,
) -> list[tuple[str, list[str]]]:
    """Per tenant: stale companies (oldest first), then never-enriched ones, under both caps."""
    cutoff = utcnow() - timedelta(days=staleness_days)
    cap = per_tenant_cap(weekly_cap)
    budget = weekly_cap
    plan: list[tuple[str, list[str]]] = []

    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        for tenant_id in await uow.records.list_tenants(max_tenants):
            if budget <= 0:
                break
            batch = await uow.records.list_stale_companies(tenant_id, cutoff=cutoff, limit=min(cap, budget))
            if len(batch) < cap:
                batch += await uow.records.list_unenriched_companies(
                    tenant_id, limit=min(cap - len(batch), budget - len(batch))
                )
            if batch:
                plan.append((tenant_id, batch))
                budget -= len(batch)
    return plan


async def run_weekly_enrichment(
    deps: EnrichmentDeps,
    *,
    weekly_cap: int | None = None,
    staleness_days: int | None = None,
    max_tenants: int | None = None,
    delay_s: float | None = None,
) -> dict[str, Any]:
    cap = int(settings.ENRICHMENT_WEEKLY_LIMIT if weekly_cap is None else weekly_cap)
    days = int(settings.ENRICHMENT_DEFAULT_STALENESS_DAYS if staleness_days is None else staleness_days)
    tenants = int(settings.ENRICHMENT_MAX_TENANTS if max_tenants is None else max_tenants)
    delay = float(settings.ENRICHMENT_BATCH_DELAY_S if delay_s is None else delay_s)

    run_id = await _open_run(deps, WEEKLY_JOB, {"cap": cap, "stalenessDays": days, "maxTenants": tenants})
    remaining = cap
    processed = 0
    failed = 0
    try:
        for tenant_id, batch in await _weekly_plan(deps, weekly_cap=cap, staleness_days=days, max_tenants=tenants):
            if remaining <= 0:
                break
            for company_id in batch:
                try:
                    await run_enrichment(deps, tenant_id, company_id, mode=MODE_FULL)
                except Exception:
                    failed += 1
                    log.exception("weekly enrichment failed tenant=%s company=%s", tenant_id, company_id)
                    continue
                processed += 1
                remaining -= 1
                if remaining <= 0:
                    break
                await deps.sleep(delay)
    except Exception as e:
        await _close_run(deps, run_id, err=e)
        raise

    summary = {"processed": processed, "failed": failed, "remaining": remaining}
    await _close_run(deps, run_id, summary=summary)
    log.info("weekly enrichment processed=%d failed=%d", processed, failed)
    return summary


async def run_tenant_batch(
    deps: EnrichmentDeps,
    tenant_id: str,
    *,
    limit: int = 50,
    mode: str = MODE_METADATA,
    force: bool = False,
    delay_s: float | None = None,
) -> dict[str, Any]:
    if not tenant_id:
        raise InputValidationError("tenant_id is required")
    mode = normalize_mode(mode)
    delay = float(settings.ENRICHMENT_ON_DEMAND_DELAY_S if delay_s is None else delay_s)

    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        company_ids = await uow.records.list_batch_candidates(tenant_id, limit=limit)

    run_id = await _open_run(deps, TENANT_BATCH_JOB, {"tenant_id": tenant_id, "limit": limit, "mode": mode})
    processed = 0
    for company_id in company_ids:
        try:
            await run_enrichment(deps, tenant_id, company_id, mode=mode, force=force)
        except Exception:
            log.exception("batch enrichment failed tenant=%s company=%s", tenant_id, company_id)
            continue
        processed += 1
        await deps.sleep(delay)

    await _close_run(deps, run_id, summary={"queued": processed, "candidates": len(company_ids)})
    return {"queued": processed}
