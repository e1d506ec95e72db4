# crmsync/adapters/repos/records.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.merge import Provenance
from ...domain.tree import contains_unset
from ...models import CrmRecord, EnrichmentVersion, EntityType, RawArchiveSnapshot, SourceCacheState


def _reject_unset(payload: Any, what: str) -> None:
    if contains_unset(payload):
        raise ValueError(f"{what} contains UNSET; prune it before writing")


class RecordRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, tenant_id: str, entity_type: EntityType, entity_id: str) -> CrmRecord | None:
        q = select(CrmRecord).where(
            CrmRecord.tenant_id == tenant_id,
            CrmRecord.entity_type == entity_type,
            CrmRecord.entity_id == entity_id,
        )
        return (await self.session.execute(q)).scalars().first()

    async def add(
        self,
        *,
        tenant_id: str,
        entity_type: EntityType,
        entity_id: str,
        data: Mapping[str, Any] | None = None,
        provenance: Mapping[str, str] | None = None,
    ) -> CrmRecord:
        _reject_unset(data or {}, "record data")
        rec = CrmRecord(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            data=dict(data or {}),
            provenance=dict(provenance or {}),
            enrichment_version=0,
        )
        self.session.add(rec)
        await self.session.flush()
        return rec

    async def find_company_by_domain(self, tenant_id: str, domain: str) -> CrmRecord | None:
        """Exact `domain` match first, then common website URL spellings."""
        dom = (domain or "").strip().lower()
        if not dom:
            return None

        base = select(CrmRecord).where(
            CrmRecord.tenant_id == tenant_id,
            CrmRecord.entity_type == EntityType.company,
        )
        q1 = base.where(CrmRecord.data["domain"].as_string() == dom).limit(1)
        rec = (await self.session.execute(q1)).scalars().first()
        if rec is not None:
            return rec

        variants: list[str] = []
        for prefix in ("https://", "http://", "https://www.", "http://www."):
            variants.append(f"{prefix}{dom}")
            variants.append(f"{prefix}{dom}/")
        q2 = base.where(CrmRecord.data["websiteUrl"].as_string().in_(variants)).limit(1)
        return (await self.session.execute(q2)).scalars().first()

    def write_merge(self, record: CrmRecord, data: Mapping[str, Any], provenance: Provenance) -> None:
        """
        Replace the document and its provenance in one go. Both are new objects so the
        ORM sees the change; the version check happens at flush/commit.
        """
        _reject_unset(data, "record data")
        record.data = dict(data)
        record.provenance = provenance.to_dict()

    async def append_version(
        self,
        record: CrmRecord,
        *,
        payload: Mapping[str, Any],
        model: str,
        usage: Mapping[str, Any] | None,
        content_hashes: Mapping[str, str],
        unchanged_sources: Sequence[str],
        forced: bool,
        qa_notes: str | None,
        lead_score: int,
        lead_signals: Sequence[str],
        at: datetime,
    ) -> EnrichmentVersion:
        _reject_unset(payload, "version payload")
        next_version = int(record.enrichment_version or 0) + 1

        ver = EnrichmentVersion(
            record_id=record.id,
            version=next_version,
            payload=dict(payload),
            model=model,
            usage=dict(usage) if usage else None,
            content_hashes=dict(content_hashes),
            unchanged_sources=list(unchanged_sources),
            forced=bool(forced),
            qa_notes=qa_notes,
            created_at=at,
        )
        self.session.add(ver)

        record.enrichment_version = next_version
        record.latest_enrichment = dict(payload)
        record.lead_score = int(lead_score)
        record.lead_signals = list(lead_signals)
        record.last_enriched_at = at
        await self.session.flush()
        return ver

    async def list_versions(self, record_id: int, limit: int = 10) -> list[EnrichmentVersion]:
        q = (
            select(EnrichmentVersion)
            .where(EnrichmentVersion.record_id == record_id)
            .order_by(EnrichmentVersion.version.desc())
            .limit(max(1, int(limit)))
        )
        return list((await self.session.execute(q)).scalars().all())

    async def upsert_raw_archive(
        self,
        record_id: int,
        *,
        provider: str,
        snapshot_id: str,
        payload: Mapping[str, Any],
        at: datetime,
    ) -> RawArchiveSnapshot:
        """Same (record, provider, snapshot_id) overwrites: second resolution is accepted."""
        q = select(RawArchiveSnapshot).where(
            RawArchiveSnapshot.record_id == record_id,
            RawArchiveSnapshot.provider == provider,
            RawArchiveSnapshot.snapshot_id == snapshot_id,
        )
        row = (await self.session.execute(q)).scalars().first()
        if row is None:
            row = RawArchiveSnapshot(record_id=record_id, provider=provider, snapshot_id=snapshot_id)
            self.session.add(row)
        row.payload = dict(payload)
        row.received_at = at
        await self.session.flush()
        return row

    async def list_raw_archives(self, record_id: int, provider: str | None = None) -> list[RawArchiveSnapshot]:
        q = select(RawArchiveSnapshot).where(RawArchiveSnapshot.record_id == record_id)
        if provider:
            q = q.where(RawArchiveSnapshot.provider == provider)
        q = q.order_by(RawArchiveSnapshot.snapshot_id.desc())
        return list((await self.session.execute(q)).scalars().all())

    async def get_source_state(self, record_id: int) -> SourceCacheState | None:
        q = select(SourceCacheState).where(SourceCacheState.record_id == record_id)
        return (await self.session.execute(q)).scalars().first()

    async def upsert_source_state(
        self,
        record_id: int,
        *,
        texts: Mapping[str, str],
        content_hashes: Mapping[str, str],
        urls: Mapping[str, str | None],
        at: datetime,
    ) -> SourceCacheState:
        row = await self.get_source_state(record_id)
        if row is None:
            row = SourceCacheState(record_id=record_id)
            self.session.add(row)
        row.texts = dict(texts)
        row.content_hashes = dict(content_hashes)
        row.urls = dict(urls)
        row.fetched_at = at
        await self.session.flush()
        return row

    async def list_tenants(self, limit: int) -> list[str]:
        q = (
            select(CrmRecord.tenant_id)
            .where(CrmRecord.entity_type == EntityType.company)
            .distinct()
            .order_by(CrmRecord.tenant_id)
            .limit(max(0, int(limit)))
        )
        return [str(t) for t in (await self.session.execute(q)).scalars().all()]

    async def list_stale_companies(self, tenant_id: str, *, cutoff: datetime, limit: int) -> list[str]:
        """Oldest enrichment first."""
        if limit <= 0:
            return []
        q = (
            select(CrmRecord.entity_id)
            .where(
                CrmRecord.tenant_id == tenant_id,
                CrmRecord.entity_type == EntityType.company,
                CrmRecord.last_enriched_at.is_not(None),
                CrmRecord.last_enriched_at < cutoff,
            )
            .order_by(CrmRecord.last_enriched_at.asc())
            .limit(limit)
        )
        return [str(x) for x in (await self.session.execute(q)).scalars().all()]

    async def list_unenriched_companies(self, tenant_id: str, *, limit: int) -> list[str]:
        if limit <= 0:
            return []
        q = (
            select(CrmRecord.entity_id)
            .where(
                CrmRecord.tenant_id == tenant_id,
                CrmRecord.entity_type == EntityType.company,
                CrmRecord.last_enriched_at.is_(None),
            )
            .order_by(CrmRecord.id.asc())
            .limit(limit)
        )
        return [str(x) for x in (await self.session.execute(q)).scalars().all()]

    async def list_batch_candidates(self, tenant_id: str, *, limit: int) -> list[str]:
        """
        Companies with active deals, else with open job orders, else the most recently updated.
        """
        lim = max(0, int(limit))
        if lim == 0:
            return []
        base = select(CrmRecord.entity_id).where(
            CrmRecord.tenant_id == tenant_id,
            CrmRecord.entity_type == EntityType.company,
        )
        for flag in ("hasActiveDeals", "hasOpenJobOrders"):
            q = base.where(CrmRecord.data[flag].as_boolean().is_(True)).order_by(CrmRecord.id.asc()).limit(lim)
            ids = [str(x) for x in (await self.session.execute(q)).scalars().all()]
            if ids:
                return ids
        q = base.order_by(CrmRecord.updated_at.desc(), CrmRecord.id.desc()).limit(lim)
        return [str(x) for x in (await self.session.execute(q)).scalars().all()]

    async def enrichment_stats(self, tenant_id: str, *, since: datetime) -> dict[str, Any]:
        base = [CrmRecord.tenant_id == tenant_id, CrmRecord.entity_type == EntityType.company]

        total = (await self.session.execute(select(func.count(CrmRecord.id)).where(*base))).scalar_one()
        enriched = (
            await self.session.execute(
                select(func.count(CrmRecord.id)).where(*base, CrmRecord.enrichment_version > 0)
            )
        ).scalar_one()
        recent = (
            await self.session.execute(
                select(func.count(CrmRecord.id)).where(
                    *base,
                    CrmRecord.last_enriched_at >= since,
                )
            )
        ).scalar_one()
        avg = (
            await self.session.execute(
                select(func.avg(CrmRecord.lead_score)).where(*base, CrmRecord.lead_score.is_not(None))
            )
        ).scalar_one()

        return {
            "companies": int(total or 0),
            "enriched": int(enriched or 0),
            "updatedLast7Days": int(recent or 0),
            "avgLeadScore": round(float(avg), 1) if avg is not None else 0.0,
        }
