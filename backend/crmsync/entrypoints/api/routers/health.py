# crmsync/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..deps import require_api_key
from ....config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    return {
        "ENV": settings.ENV,
        "CRMSYNC_DB_URL": settings.CRMSYNC_DB_URL,
        "OPENAI_MODEL": settings.OPENAI_MODEL,
        "OPENAI_KEY_SET": bool(settings.OPENAI_API_KEY),
        "APOLLO_ENABLED": settings.apollo_wanted(),
        "APOLLO_KEY_SET": bool(settings.APOLLO_API_KEY),
        "SERP_KEY_SET": bool(settings.SERP_API_KEY),
        "ENRICHMENT_WEEKLY_LIMIT": settings.ENRICHMENT_WEEKLY_LIMIT,
    }


@router.get("/debug/routes", dependencies=[Depends(require_api_key)])
def debug_routes(request: Request) -> dict[str, Any]:
    """
    Shows what this running server has actually mounted.
    """
    routes: list[str] = []
    for r in request.app.routes:
        methods = getattr(r, "methods", None)
        path = getattr(r, "path", None)
        if path:
            if methods:
                routes.append(f"{sorted(list(methods))} {path}")
            else:
                routes.append(path)
    return {"count": len(routes), "routes": sorted(routes)}
