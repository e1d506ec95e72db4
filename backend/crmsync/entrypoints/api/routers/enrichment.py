# crmsync/entrypoints/api/routers/enrichment.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from ..deps import get_deps, require_api_key
from ....jobs.enrichment import run_tenant_batch
from ....schemas import BatchRequest, BatchResult, ByDomainRequest, EnrichmentOut, EnrichmentStats, EnrichRequest
from ....service_layer.dependencies import EnrichmentDeps
from ....service_layer.use_cases.enrich_company import run_enrichment
from ....service_layer.use_cases.enrich_contact import run_contact_enrichment
from ....service_layer.use_cases.firmographics import sync_firmographics, sync_firmographics_by_domain
from ....service_layer.use_cases.queries import enrichment_stats, enrichment_versions, recommended_contacts

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["enrichment"], dependencies=[Depends(require_api_key)])


def _csv(v: str | None) -> list[str] | None:
    if not v:
        return None
    return [x.strip() for x in v.split(",") if x.strip()] or None


@router.post("/companies/{company_id}/enrich", response_model=EnrichmentOut)
async def enrich_company(
    tenant_id: str,
    company_id: str,
    body: EnrichRequest | None = None,
    deps: EnrichmentDeps = Depends(get_deps),
) -> EnrichmentOut:
    body = body or EnrichRequest()
    outcome = await run_enrichment(deps, tenant_id, company_id, mode=body.mode, force=body.force)
    return EnrichmentOut(**outcome.to_dict())


@router.post("/contacts/{contact_id}/enrich")
async def enrich_contact(
    tenant_id: str,
    contact_id: str,
    deps: EnrichmentDeps = Depends(get_deps),
) -> dict[str, Any]:
    return await run_contact_enrichment(deps, tenant_id, contact_id)


@router.post("/companies/{company_id}/firmographics")
async def company_firmographics(
    tenant_id: str,
    company_id: str,
    deps: EnrichmentDeps = Depends(get_deps),
) -> dict[str, Any]:
    return await sync_firmographics(deps, tenant_id, company_id)


@router.post("/firmographics/by-domain")
async def firmographics_by_domain(
    tenant_id: str,
    body: ByDomainRequest,
    deps: EnrichmentDeps = Depends(get_deps),
) -> dict[str, Any]:
    return await sync_firmographics_by_domain(deps, tenant_id, body.domain)


@router.get("/companies/{company_id}/recommended-contacts")
async def company_recommended_contacts(
    tenant_id: str,
    company_id: str,
    titles: str | None = Query(None, description="Comma-separated title keywords"),
    departments: str | None = Query(None, description="Comma-separated departments"),
    seniorities: str | None = Query(None, description="Comma-separated seniorities"),
    deps: EnrichmentDeps = Depends(get_deps),
) -> dict[str, Any]:
    filters = {
        "titles": _csv(titles),
        "departments": _csv(departments),
        "seniorities": _csv(seniorities),
    }
    return await recommended_contacts(deps, tenant_id, company_id, filters)


@router.get("/companies/{company_id}/versions")
async def company_versions(
    tenant_id: str,
    company_id: str,
    limit: int = Query(10, ge=1, le=100),
    deps: EnrichmentDeps = Depends(get_deps),
) -> list[dict[str, Any]]:
    return await enrichment_versions(deps, tenant_id, company_id, limit=limit)


@router.get("/enrichment/stats", response_model=EnrichmentStats)
async def tenant_enrichment_stats(
    tenant_id: str,
    deps: EnrichmentDeps = Depends(get_deps),
) -> EnrichmentStats:
    return EnrichmentStats(**(await enrichment_stats(deps, tenant_id)))


@router.post("/enrichment/batch", response_model=BatchResult)
async def tenant_enrichment_batch(
    tenant_id: str,
    body: BatchRequest | None = None,
    deps: EnrichmentDeps = Depends(get_deps),
) -> BatchResult:
    body = body or BatchRequest()
    res = await run_tenant_batch(deps, tenant_id, limit=body.limit, mode=body.mode, force=body.force)
    return BatchResult(**res)
