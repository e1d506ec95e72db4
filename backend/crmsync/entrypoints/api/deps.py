# crmsync/entrypoints/api/deps.py
from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...config import settings
from ...db import get_session_maker
from ...service_layer.advisory_cache import AdvisoryCache
from ...service_layer.dependencies import EnrichmentDeps, build_enrichment_deps
from ...service_layer.use_cases.advisory import AdvisoryService, LlmAdvisoryGenerator


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


def get_deps(
    request: Request,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> EnrichmentDeps:
    # one set of provider clients per app; tests override this dependency
    deps = getattr(request.app.state, "enrichment_deps", None)
    if deps is None:
        deps = build_enrichment_deps(session_maker)
        request.app.state.enrichment_deps = deps
    return deps


def get_advisory_service(request: Request, deps: EnrichmentDeps = Depends(get_deps)) -> AdvisoryService:
    # the service owns the in-process locks, so it must outlive a single request
    svc = getattr(request.app.state, "advisory_service", None)
    if svc is None:
        svc = AdvisoryService(
            AdvisoryCache(deps.session_maker),
            LlmAdvisoryGenerator(deps.llm, deps.credentials, deps.session_maker),
        )
        request.app.state.advisory_service = svc
    return svc
