from pydantic import BaseModel, Field
from typing import Any, Literal

Mode = Literal["full", "metadata-only", "metadata"]


class EnrichRequest(BaseModel):
    mode: Mode = "full"
    force: bool = False


class EnrichmentOut(BaseModel):
    tenant_id: str
    entity_id: str
    status: str
    version: int | None = None
    model: str | None = None
    lead_score: int | None = None
    lead_signals: list[str] = Field(default_factory=list)
    updated_fields: list[str] = Field(default_factory=list)
    unchanged_sources: list[str] = Field(default_factory=list)
    discovered_urls: dict[str, str] = Field(default_factory=dict)
    qa_notes: str | None = None
    snapshot_id: str | None = None


class ByDomainRequest(BaseModel):
    domain: str = Field(..., min_length=1)


class BatchRequest(BaseModel):
    limit: int = Field(50, ge=1, le=500)
    mode: Mode = "metadata-only"
    force: bool = False


class BatchResult(BaseModel):
    queued: int = Field(..., ge=0)


class EnrichmentStats(BaseModel):
    companies: int
    enriched: int
    updatedLast7Days: int
    avgLeadScore: float | None = None


class AdvisoryIn(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    entity_id: str = Field(..., min_length=1)
    stage_key: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


class AdvisoryOut(BaseModel):
    ok: bool
    payload: dict[str, Any] | None = None
    error: str | None = None
    cacheHit: bool | None = None
    recent: bool | None = None
    rateLimited: bool | None = None
    deduped: bool | None = None
