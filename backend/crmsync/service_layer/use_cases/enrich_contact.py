# crmsync/service_layer/use_cases/enrich_contact.py
from __future__ import annotations

import logging
from typing import Any, Mapping

from ...adapters.credentials import APOLLO
from ...domain.errors import InputValidationError, ProviderError, RecordNotFound
from ...domain.firmographics import APOLLO_CONTACT_SOURCE_LABEL, APOLLO_SOURCE, person_candidates
from ...domain.merge import MergeResolver, Provenance
from ...domain.snapshots import snapshot_id, utcnow
from ...domain.tree import get_at
from ...models import EntityType, SignalStrength
from ..dependencies import EnrichmentDeps
from ..merging import with_merge_retry
from ..unit_of_work import SqlAlchemyUnitOfWork
from .firmographics import company_domain

log = logging.getLogger(__name__)


def _clean(v: Any) -> str | None:
    s = str(v).strip() if v is not None else ""
    return s or None


def match_params(contact: Mapping[str, Any], company: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Provider match input. Email is the strongest key, then the full name,
    then first/last name; the linked company narrows the search.
    """
    params: dict[str, Any] = {}
    email = _clean(contact.get("email"))
    if email:
        params["email"] = email

    full = _clean(contact.get("fullName") or contact.get("name"))
    if full:
        params["name"] = full
    else:
        first = _clean(contact.get("firstName"))
        last = _clean(contact.get("lastName"))
        if first:
            params["first_name"] = first
        if last:
            params["last_name"] = last

    org_name = _clean((company or {}).get("name")) or _clean(contact.get("companyName"))
    if org_name:
        params["organization_name"] = org_name
    dom = company_domain(company or {}) if company else None
    if dom:
        params["domain"] = dom

    title = _clean(get_at(contact, ("title",)) or contact.get("jobTitle"))
    if title:
        params["title"] = title
    linkedin = _clean(get_at(contact, ("social", "linkedin")) or contact.get("linkedInUrl"))
    if linkedin:
        params["linkedin_url"] = linkedin
    return params


def _has_identity(params: Mapping[str, Any]) -> bool:
    return any(k in params for k in ("email", "name", "first_name", "last_name", "linkedin_url"))


async def run_contact_enrichment(deps: EnrichmentDeps, tenant_id: str, contact_id: str) -> dict[str, Any]:
    if not tenant_id or not contact_id:
        raise InputValidationError("tenant_id and contact_id are required")

    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        rec = await uow.records.get(tenant_id, EntityType.contact, contact_id)
        if rec is None:
            raise RecordNotFound(f"contact {contact_id!r} not found")
        contact = dict(rec.data or {})
        company: dict[str, Any] | None = None
        company_id = _clean(contact.get("companyId"))
        if company_id:
            crec = await uow.records.get(tenant_id, EntityType.company, company_id)
            company = dict(crec.data or {}) if crec is not None else None

    params = match_params(contact, company)
    if not _has_identity(params):
        return {"ok": False, "error": "Contact has no email or name to match on"}

    api_key = await deps.credentials.resolve(tenant_id, APOLLO)
    if not api_key or deps.firmographics is None:
        return {"ok": False, "error": "Contact provider not configured"}

    try:
        person = await deps.firmographics.contact_match(params, api_key)
    except ProviderError as e:
        log.warning("contact match failed tenant=%s contact=%s err=%s", tenant_id, contact_id, e)
        return {"ok": False, "error": str(e)}
    if not person:
        return {"ok": False, "error": "No match returned from provider"}

    async def op(uow: SqlAlchemyUnitOfWork) -> dict[str, Any]:
        rec = await uow.records.get(tenant_id, EntityType.contact, contact_id)
        if rec is None:
            raise RecordNotFound(f"contact {contact_id!r} not found")
        at = utcnow()
        prov = Provenance.from_dict(rec.provenance)
        resolver = MergeResolver(APOLLO_SOURCE)
        plan = resolver.plan(rec.data or {}, prov, person_candidates(person))
        resolver.integration_metadata(
            plan,
            synced_at=at,
            organization_id=person.get("organization_id"),
            signal_strength=SignalStrength.verified.value,
            source_label=APOLLO_CONTACT_SOURCE_LABEL,
        )
        data, prov = plan.apply(rec.data or {}, prov)
        uow.records.write_merge(rec, data, prov)

        sid = snapshot_id(at)
        await uow.records.upsert_raw_archive(
            rec.id,
            provider=APOLLO_SOURCE,
            snapshot_id=sid,
            payload={"person": dict(person), "receivedAt": at.isoformat(), "params": params},
            at=at,
        )
        return {"ok": True, "updatedFields": plan.updated_fields(), "appliedFields": plan.applied, "snapshotId": sid}

    return await with_merge_retry(deps.session_maker, op, label=f"contact {tenant_id}/{contact_id}")
