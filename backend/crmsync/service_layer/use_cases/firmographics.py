# crmsync/service_layer/use_cases/firmographics.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from ...adapters.credentials import APOLLO
from ...domain.errors import InputValidationError, ProviderError, RecordNotFound
from ...domain.fields import extract_domain
from ...domain.firmographics import (
    APOLLO_SOURCE,
    APOLLO_SOURCE_LABEL,
    organization_candidates,
    organization_summary,
)
from ...domain.merge import MergePlan, MergeResolver, Provenance
from ...domain.snapshots import snapshot_id, utcnow
from ...domain.tree import get_at
from ...models import CrmRecord, EntityType, SignalStrength
from ..dependencies import EnrichmentDeps
from ..merging import with_merge_retry
from ..unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


def company_domain(data: Mapping[str, Any]) -> str | None:
    """Domain from websiteUrl (scheme optional, www. stripped), else the stored domain."""
    website = get_at(data, ("websiteUrl",)) or data.get("website")
    dom = extract_domain(website) if website else None
    if dom:
        return dom
    stored = data.get("domain")
    return extract_domain(stored) if stored else None


def firmographics_plan(
    existing: Mapping[str, Any],
    provenance: Provenance,
    org: Mapping[str, Any],
    *,
    domain: str | None,
    at: datetime,
) -> MergePlan:
    resolver = MergeResolver(APOLLO_SOURCE)
    plan = resolver.plan(existing, provenance, organization_candidates(org, domain))
    resolver.integration_metadata(
        plan,
        synced_at=at,
        organization_id=org.get("id"),
        signal_strength=SignalStrength.verified.value,
        source_label=APOLLO_SOURCE_LABEL,
    )
    summary = organization_summary(org)
    if summary:
        plan.set_metadata(("firmographics", APOLLO_SOURCE), summary)
    return plan


async def archive_organization(
    uow: SqlAlchemyUnitOfWork,
    record: CrmRecord,
    org: Mapping[str, Any],
    *,
    domain: str | None,
    at: datetime,
) -> str:
    sid = snapshot_id(at)
    await uow.records.upsert_raw_archive(
        record.id,
        provider=APOLLO_SOURCE,
        snapshot_id=sid,
        payload={"organization": dict(org), "receivedAt": at.isoformat(), "domain": domain},
        at=at,
    )
    return sid


async def _merge_organization(
    deps: EnrichmentDeps,
    *,
    tenant_id: str,
    company_id: str,
    org: Mapping[str, Any],
    domain: str,
) -> dict[str, Any]:
    async def op(uow: SqlAlchemyUnitOfWork) -> dict[str, Any]:
        rec = await uow.records.get(tenant_id, EntityType.company, company_id)
        if rec is None:
            raise RecordNotFound(f"company {company_id!r} not found")
        at = utcnow()
        plan = firmographics_plan(rec.data or {}, Provenance.from_dict(rec.provenance), org, domain=domain, at=at)
        data, prov = plan.apply(rec.data or {}, Provenance.from_dict(rec.provenance))
        uow.records.write_merge(rec, data, prov)
        sid = await archive_organization(uow, rec, org, domain=domain, at=at)
        return {"ok": True, "updatedFields": plan.updated_fields(), "snapshotId": sid}

    return await with_merge_retry(deps.session_maker, op, label=f"firmographics {tenant_id}/{company_id}")


async def sync_firmographics(deps: EnrichmentDeps, tenant_id: str, company_id: str) -> dict[str, Any]:
    """
    Provider organization lookup for one company, merged under provenance rules.
    Provider trouble comes back as {ok: False, error}; persistence errors propagate.
    """
    if not tenant_id or not company_id:
        raise InputValidationError("tenant_id and company_id are required")

    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        rec = await uow.records.get(tenant_id, EntityType.company, company_id)
        if rec is None:
            raise RecordNotFound(f"company {company_id!r} not found")
        domain = company_domain(rec.data or {})

    if not domain:
        return {"ok": False, "error": "Company has no website or domain"}

    api_key = await deps.credentials.resolve(tenant_id, APOLLO)
    if not api_key or deps.firmographics is None:
        return {"ok": False, "error": "Firmographics provider not configured"}

    try:
        org = await deps.firmographics.firmographics_by_domain(domain, api_key)
    except ProviderError as e:
        log.warning("firmographics lookup failed tenant=%s company=%s err=%s", tenant_id, company_id, e)
        return {"ok": False, "error": str(e)}
    if not org:
        return {"ok": False, "error": "No data returned from provider"}

    return await _merge_organization(deps, tenant_id=tenant_id, company_id=company_id, org=org, domain=domain)


async def sync_firmographics_by_domain(deps: EnrichmentDeps, tenant_id: str, domain: str) -> dict[str, Any]:
    if not tenant_id or not domain:
        raise InputValidationError("tenant_id and domain are required")

    dom = extract_domain(domain)
    if not dom:
        raise InputValidationError(f"invalid domain {domain!r}")

    api_key = await deps.credentials.resolve(tenant_id, APOLLO)
    if not api_key or deps.firmographics is None:
        return {"ok": False, "error": "Firmographics provider not configured"}

    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        rec = await uow.records.find_company_by_domain(tenant_id, dom)
        company_id = rec.entity_id if rec is not None else None

    if company_id is None:
        return {"ok": False, "error": "Company not found for domain"}

    try:
        org = await deps.firmographics.firmographics_by_domain(dom, api_key)
    except ProviderError as e:
        return {"ok": False, "error": str(e)}
    if not org:
        return {"ok": False, "error": "No data returned from provider"}

    out = await _merge_organization(deps, tenant_id=tenant_id, company_id=company_id, org=org, domain=dom)
    out["companyId"] = company_id
    return out
