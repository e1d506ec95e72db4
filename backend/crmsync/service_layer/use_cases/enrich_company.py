# crmsync/service_layer/use_cases/enrich_company.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from ...adapters.credentials import APOLLO, OPENAI, SERP
from ...config import settings
from ...domain.errors import InputValidationError, RecordNotFound
from ...domain.firmographics import AI_SOURCE, augment_profile_with_people, extraction_candidates
from ...domain.merge import MergePlan, MergeResolver, Provenance
from ...domain.profile import CompanyProfile
from ...domain.scoring import compute_lead_score
from ...domain.snapshots import utcnow
from ...domain.tree import get_at
from ...models import EntityType, SignalStrength
from ..aggregator import SOURCE_NAMES, AggregatedSources, SourceDescriptor, aggregate_sources
from ..best_effort import BestEffortTask, best_effort
from ..dependencies import EnrichmentDeps
from ..extraction import ExtractionResult, StructuredExtractor
from ..merging import with_merge_retry
from ..unit_of_work import SqlAlchemyUnitOfWork
from .firmographics import archive_organization, company_domain, firmographics_plan

log = logging.getLogger(__name__)

MODE_FULL = "full"
MODE_METADATA = "metadata-only"
_MODE_ALIASES = {"full": MODE_FULL, "metadata-only": MODE_METADATA, "metadata": MODE_METADATA}

PIPELINE_SOURCE = "pipeline"


@dataclass
class EnrichmentOutcome:
    tenant_id: str
    entity_id: str
    status: str  # enriched | metadata | no_signal | degraded
    version: int | None = None
    model: str | None = None
    lead_score: int | None = None
    lead_signals: list[str] = field(default_factory=list)
    updated_fields: list[str] = field(default_factory=list)
    unchanged_sources: list[str] = field(default_factory=list)
    discovered_urls: dict[str, str] = field(default_factory=dict)
    qa_notes: str | None = None
    snapshot_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _CompanyInputs:
    record_id: int
    name: str
    data: dict[str, Any]
    previous_hashes: dict[str, str]


@dataclass
class _Augmentation:
    domain: str | None = None
    organization: dict[str, Any] | None = None
    people: list[dict[str, Any]] = field(default_factory=list)


def normalize_mode(mode: str | None) -> str:
    m = _MODE_ALIASES.get((mode or MODE_FULL).strip().lower())
    if m is None:
        raise InputValidationError(f"unknown mode {mode!r}; use 'full' or 'metadata-only'")
    return m


def source_urls(data: Mapping[str, Any]) -> dict[str, str | None]:
    discovered = get_at(data, ("metadata", "discoveredUrls")) or {}
    if not isinstance(discovered, Mapping):
        discovered = {}
    return {
        "website": get_at(data, ("websiteUrl",)) or data.get("website") or discovered.get("website") or None,
        "social": get_at(data, ("social", "linkedin")) or discovered.get("social") or None,
        "jobs": data.get("jobsUrl") or discovered.get("jobs") or None,
    }


async def _load_company(deps: EnrichmentDeps, tenant_id: str, entity_id: str) -> _CompanyInputs:
    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        rec = await uow.records.get(tenant_id, EntityType.company, entity_id)
        if rec is None:
            raise RecordNotFound(f"company {entity_id!r} not found for tenant {tenant_id!r}")
        state = await uow.records.get_source_state(rec.id)
        data = dict(rec.data or {})
        return _CompanyInputs(
            record_id=rec.id,
            name=str(data.get("name") or data.get("companyName") or ""),
            data=data,
            previous_hashes=dict(state.content_hashes or {}) if state else {},
        )


async def _discover_missing(deps: EnrichmentDeps, tenant_id: str, name: str, urls: dict[str, str | None]) -> dict[str, str]:
    if deps.discovery is None or all(urls.get(n) for n in SOURCE_NAMES):
        return {}
    key = await deps.credentials.resolve(tenant_id, SERP)
    if not key:
        return {}
    found = await best_effort(deps.discovery.discover(name, key), label="url discovery", default={}) or {}
    return {n: u for n, u in found.items() if n in SOURCE_NAMES and u and not urls.get(n)}


async def _persist_source_state(deps: EnrichmentDeps, record_id: int, sources: AggregatedSources) -> None:
    async with SqlAlchemyUnitOfWork(deps.session_maker) as uow:
        await uow.records.upsert_source_state(
            record_id,
            texts=sources.texts(),
            content_hashes=sources.hashes(),
            urls=sources.urls(),
            at=sources.fetched_at,
        )


def _pipeline_metadata(
    *,
    signal_strength: SignalStrength,
    urls: dict[str, str],
    enriched_at_iso: str | None = None,
) -> MergePlan:
    plan = MergePlan(source_id=PIPELINE_SOURCE)
    plan.set_metadata(("metadata", "signalStrength"), signal_strength.value)
    if urls:
        plan.set_metadata(("metadata", "discoveredUrls"), dict(urls))
    if enriched_at_iso:
        plan.set_metadata(("lastEnrichedAt",), enriched_at_iso)
    return plan


async def _persist_metadata_only(
    deps: EnrichmentDeps,
    tenant_id: str,
    entity_id: str,
    *,
    signal_strength: SignalStrength,
    resolved_urls: dict[str, str],
) -> None:
    async def op(uow: SqlAlchemyUnitOfWork) -> None:
        rec = await uow.records.get(tenant_id, EntityType.company, entity_id)
        if rec is None:
            raise RecordNotFound(f"company {entity_id!r} not found")
        at = utcnow()
        plan = _pipeline_metadata(
            signal_strength=signal_strength,
            urls=resolved_urls,
            enriched_at_iso=at.isoformat(),
        )
        data, prov = plan.apply(rec.data or {}, Provenance.from_dict(rec.provenance))
        uow.records.write_merge(rec, data, prov)
        # an attempt leaves the never-enriched pool
        rec.last_enriched_at = at

    await with_merge_retry(deps.session_maker, op, label=f"metadata {tenant_id}/{entity_id}")


async def _augment(deps: EnrichmentDeps, tenant_id: str, data: Mapping[str, Any]) -> _Augmentation:
    aug = _Augmentation(domain=company_domain(data))
    if deps.firmographics is None or not aug.domain:
        return aug
    key = await deps.credentials.resolve(tenant_id, APOLLO)
    if not key:
        return aug

    provider = deps.firmographics
    org, people = await asyncio.gather(
        best_effort(provider.firmographics_by_domain(aug.domain, key), label="firmographics"),
        best_effort(provider.people_search(aug.domain, key, limit=10), label="people search", default=[]),
    )
    aug.organization = org or None
    aug.people = list(people or [])
    return aug


async def run_enrichment(
    deps: EnrichmentDeps,
    tenant_id: str,
    entity_id: str,
    *,
    mode: str = MODE_FULL,
    force: bool = False,
) -> EnrichmentOutcome:
    """
    FetchingSources -> Extracting -> (QA, augmentation) -> Merging/Persisting -> Scoring.
    Without sources (or in metadata-only mode) only metadata is written.
    """
    if not tenant_id or not entity_id:
        raise InputValidationError("tenant_id and entity_id are required")
    mode = normalize_mode(mode)

    company = await _load_company(deps, tenant_id, entity_id)

    llm_key: str | None = None
    degraded = False
    if mode == MODE_FULL:
        llm_key = await deps.credentials.resolve(tenant_id, OPENAI)
        if not llm_key:
            log.warning("no language-model credential tenant=%s; running metadata-only", tenant_id)
            degraded = True

    urls = source_urls(company.data)
    discovered = await _discover_missing(deps, tenant_id, company.name, urls)
    urls.update(discovered)

    sources = await aggregate_sources(
        deps.fetcher,
        [SourceDescriptor(name=n, url=urls.get(n)) for n in SOURCE_NAMES],
        max_chars=settings.SOURCE_MAX_CHARS,
    )
    await _persist_source_state(deps, company.record_id, sources)
    unchanged = sources.unchanged_since(company.previous_hashes)
    resolved = {n: u for n, u in {**sources.urls(), **discovered}.items() if u}

    if mode == MODE_METADATA or degraded or not sources.any_signal:
        strength = SignalStrength.low if (sources.any_signal and (mode == MODE_METADATA or degraded)) else SignalStrength.none
        await _persist_metadata_only(deps, tenant_id, entity_id, signal_strength=strength, resolved_urls=resolved)
        status = "degraded" if degraded else ("metadata" if mode == MODE_METADATA else "no_signal")
        log.info("enrichment %s tenant=%s company=%s signal=%s", status, tenant_id, entity_id, strength.value)
        return EnrichmentOutcome(
            tenant_id=tenant_id,
            entity_id=entity_id,
            status=status,
            unchanged_sources=unchanged,
            discovered_urls=discovered,
        )

    assert llm_key is not None
    extractor = StructuredExtractor(deps.llm)
    extraction = await extractor.extract(company_name=company.name, sources=sources, api_key=llm_key)

    qa: BestEffortTask[str] | None = None
    if not extraction.is_fallback:
        qa = BestEffortTask(
            extractor.qa_note(profile=extraction.profile, sources=sources, api_key=llm_key),
            label="qa annotate",
        )

    aug = await _augment(deps, tenant_id, company.data)
    profile = augment_profile_with_people(extraction.profile, aug.people)
    qa_notes = await qa.result() if qa is not None else None

    score = compute_lead_score(profile)
    outcome = await _persist_enrichment(
        deps,
        tenant_id,
        entity_id,
        extraction=extraction,
        profile=profile,
        aug=aug,
        discovered=discovered,
        resolved_urls=resolved,
        unchanged=unchanged,
        hashes=sources.hashes(),
        qa_notes=qa_notes,
        force=force,
        lead_score=score.score,
        lead_signals=list(score.signals),
    )
    log.info(
        "enrichment done tenant=%s company=%s version=%s model=%s score=%s",
        tenant_id,
        entity_id,
        outcome.version,
        outcome.model,
        outcome.lead_score,
    )
    return outcome


async def _persist_enrichment(
    deps: EnrichmentDeps,
    tenant_id: str,
    entity_id: str,
    *,
    extraction: ExtractionResult,
    profile: CompanyProfile,
    aug: _Augmentation,
    discovered: dict[str, str],
    resolved_urls: dict[str, str],
    unchanged: list[str],
    hashes: dict[str, str],
    qa_notes: str | None,
    force: bool,
    lead_score: int,
    lead_signals: list[str],
) -> EnrichmentOutcome:
    async def op(uow: SqlAlchemyUnitOfWork) -> EnrichmentOutcome:
        rec = await uow.records.get(tenant_id, EntityType.company, entity_id)
        if rec is None:
            raise RecordNotFound(f"company {entity_id!r} not found")

        at = utcnow()
        data: dict[str, Any] = dict(rec.data or {})
        prov = Provenance.from_dict(rec.provenance)
        plans: list[MergePlan] = []

        # fallback text is not trusted enough to land in record fields
        if not extraction.is_fallback:
            ai_plan = MergeResolver(AI_SOURCE).plan(data, prov, extraction_candidates(profile))
            data, prov = ai_plan.apply(data, prov)
            plans.append(ai_plan)

        if aug.organization:
            f_plan = firmographics_plan(data, prov, aug.organization, domain=aug.domain, at=at)
            data, prov = f_plan.apply(data, prov)
            plans.append(f_plan)

        strength = SignalStrength.verified if aug.organization else SignalStrength.low
        meta = _pipeline_metadata(signal_strength=strength, urls=resolved_urls, enriched_at_iso=at.isoformat())
        data, prov = meta.apply(data, prov)

        uow.records.write_merge(rec, data, prov)
        ver = await uow.records.append_version(
            rec,
            payload=profile.to_doc(),
            model=extraction.model,
            usage=extraction.usage,
            content_hashes=hashes,
            unchanged_sources=unchanged,
            forced=force,
            qa_notes=qa_notes,
            lead_score=lead_score,
            lead_signals=lead_signals,
            at=at,
        )

        sid = None
        if aug.organization:
            sid = await archive_organization(uow, rec, aug.organization, domain=aug.domain, at=at)

        updated = sorted({f for p in plans for f in p.updated_fields()})
        return EnrichmentOutcome(
            tenant_id=tenant_id,
            entity_id=entity_id,
            status="enriched",
            version=ver.version,
            model=extraction.model,
            lead_score=lead_score,
            lead_signals=lead_signals,
            updated_fields=updated,
            unchanged_sources=unchanged,
            discovered_urls=discovered,
            qa_notes=qa_notes,
            snapshot_id=sid,
        )

    return await with_merge_retry(deps.session_maker, op, label=f"enrichment {tenant_id}/{entity_id}")
