# crmsync/service_layer/use_cases/queries.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from ...adapters.credentials import APOLLO
from ...domain.errors import InputValidationError, ProviderError, RecordNotFound
from ...domain.fields import extract_domain
from ...domain.snapshots import utcnow
from ...domain.tree import get_at
from ...models import EntityType
from ..dependencies import EnrichmentDeps
from ..unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 7


def _list_filter(filters: dict[str, Any], key: str) -> list[str] | None:
    v = filters.get(key)
    if not v:
        return None
    if isinstance(v, str):
        v = [v]
    out = [str(x).strip() for x in v if str(x).strip()]
    return out or None


async def recommended_contacts(
    deps: EnrichmentDeps,
    tenant_id: str,
    company_id: str,
    filters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """People at the company's domain matching optional title/department/seniority filters."""
    if not tenant_id or not company_id:
        raise InputValidationError("tenant_id and company_id are required")

    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        rec = await uow.records.get(tenant_id, EntityType.company, company_id)
        if rec is None:
            raise RecordNotFound(f"company {company_id!r} not found")
        data = dict(rec.data or {})

    website = (
        get_at(data, ("websiteUrl",))
        or data.get("website")
        or get_at(data, ("metadata", "discoveredUrls", "website"))
        or data.get("domain")
    )
    domain = extract_domain(website) if website else None
    api_key = await deps.credentials.resolve(tenant_id, APOLLO)

    people: list[dict[str, Any]] = []
    if api_key and domain and deps.firmographics is not None:
        f = filters or {}
        kw: dict[str, Any] = {"limit": 10}
        departments = _list_filter(f, "departments")
        seniorities = _list_filter(f, "seniorities")
        if departments:
            kw["departments"] = tuple(departments)
        if seniorities:
            kw["seniorities"] = tuple(seniorities)
        try:
            people = await deps.firmographics.people_search(domain, api_key, **kw)
        except ProviderError as e:
            return {"ok": False, "error": str(e)}

        titles = _list_filter(f, "titles")
        if titles:
            wanted = [t.lower() for t in titles]
            people = [p for p in people if any(w in str(p.get("title") or "").lower() for w in wanted)]

    return {"ok": True, "contacts": people}


async def enrichment_versions(deps: EnrichmentDeps, tenant_id: str, company_id: str, limit: int = 10) -> list[dict[str, Any]]:
    if not tenant_id or not company_id:
        raise InputValidationError("tenant_id and company_id are required")
    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        rec = await uow.records.get(tenant_id, EntityType.company, company_id)
        if rec is None:
            raise RecordNotFound(f"company {company_id!r} not found")
        rows = await uow.records.list_versions(rec.id, limit=limit)
        out: list[dict[str, Any]] = []
        for r in rows:
            doc: dict[str, Any] = {
                "version": r.version,
                "model": r.model,
                "payload": r.payload,
                "usage": r.usage,
                "contentHashes": r.content_hashes,
                "unchangedSources": r.unchanged_sources,
                "forced": r.forced,
                "createdAt": r.created_at.isoformat() if r.created_at else None,
            }
            if r.qa_notes:
                doc["qaNotes"] = r.qa_notes
            out.append(doc)
        return out


async def enrichment_stats(deps: EnrichmentDeps, tenant_id: str) -> dict[str, Any]:
    if not tenant_id:
        raise InputValidationError("tenant_id is required")
    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        return await uow.records.enrichment_stats(tenant_id, since=utcnow() - timedelta(days=STATS_WINDOW_DAYS))
