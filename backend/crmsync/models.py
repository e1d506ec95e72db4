# crmsync/models.py
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .domain.snapshots import utcnow


class Base(DeclarativeBase):
    pass


# -----------------------------
# Core enums
# -----------------------------
class EntityType(str, enum.Enum):
    company = "company"
    contact = "contact"


class SignalStrength(str, enum.Enum):
    none = "none"
    low = "low"
    verified = "verified"


class JobRunStatus(str, enum.Enum):
    running = "running"
    success = "success"
    failed = "failed"


# -----------------------------
# Models
# -----------------------------
class CrmRecord(Base):
    """
    Canonical company/contact document. `data` and `provenance` are JSON trees and are
    always reassigned as new objects, never mutated in place (change tracking relies on it).
    """
    __tablename__ = "crm_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "entity_type", "entity_id", name="uq_record_tenant_entity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(80), index=True)
    entity_type: Mapped[EntityType] = mapped_column(Enum(EntityType), index=True)
    entity_id: Mapped[str] = mapped_column(String(120), index=True)

    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    provenance: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)

    enrichment_version: Mapped[int] = mapped_column(Integer, default=0)
    latest_enrichment: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    lead_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lead_signals: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    last_enriched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    # optimistic concurrency counter
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": row_version}


class EnrichmentVersion(Base):
    __tablename__ = "enrichment_versions"
    __table_args__ = (
        UniqueConstraint("record_id", "version", name="uq_enrichment_record_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    record_id: Mapped[int] = mapped_column(Integer, index=True)
    version: Mapped[int] = mapped_column(Integer)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    model: Mapped[str] = mapped_column(String(80))
    usage: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    content_hashes: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    unchanged_sources: Mapped[list[str]] = mapped_column(JSON, default=list)
    forced: Mapped[bool] = mapped_column(Boolean, default=False)
    qa_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class RawArchiveSnapshot(Base):
    __tablename__ = "raw_archive_snapshots"
    __table_args__ = (
        UniqueConstraint("record_id", "provider", "snapshot_id", name="uq_archive_record_provider_snapshot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    record_id: Mapped[int] = mapped_column(Integer, index=True)
    provider: Mapped[str] = mapped_column(String(40), index=True)
    snapshot_id: Mapped[str] = mapped_column(String(14))

    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SourceCacheState(Base):
    __tablename__ = "source_cache_states"
    __table_args__ = (UniqueConstraint("record_id", name="uq_source_state_record"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    record_id: Mapped[int] = mapped_column(Integer, index=True)

    texts: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    content_hashes: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    urls: Mapped[dict[str, str | None]] = mapped_column(JSON, default=dict)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class AdvisoryCacheEntry(Base):
    __tablename__ = "advisory_cache_entries"
    __table_args__ = (UniqueConstraint("cache_window", "scope_key", name="uq_advisory_window_scope"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    window: Mapped[str] = mapped_column("cache_window", String(20), index=True)
    scope_key: Mapped[str] = mapped_column(String(255), index=True)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    written_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ProviderCredential(Base):
    __tablename__ = "provider_credentials"
    __table_args__ = (UniqueConstraint("tenant_id", "provider", name="uq_credential_tenant_provider"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(80), index=True)
    provider: Mapped[str] = mapped_column(String(40))
    secret: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class JobRun(Base):
    """
    Tracks job executions (weekly enrichment, tenant batches).
    """
    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(80), index=True)

    status: Mapped[JobRunStatus] = mapped_column(Enum(JobRunStatus), default=JobRunStatus.running, index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # optional metadata: {"tenant_id": ..., "limit": ...}
    meta_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_json: Mapped[str | None] = mapped_column(Text, nullable=True)
