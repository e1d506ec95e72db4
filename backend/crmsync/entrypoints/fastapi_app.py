# crmsync/entrypoints/fastapi_app.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..db import engine
from ..domain.errors import InputValidationError, PersistenceError, RecordNotFound
from ..models import Base
from .api.routers import advisory, enrichment, health, jobs

log = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="crmsync - CRM Enrichment")

    @app.on_event("startup")
    async def _startup() -> None:
        # Single place where DB tables are created in dev.
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @app.exception_handler(RecordNotFound)
    async def _not_found(request: Request, exc: RecordNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InputValidationError)
    async def _bad_input(request: Request, exc: InputValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError) -> JSONResponse:
        log.error("persistence failure path=%s err=%s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "storage unavailable, retry later"})

    # Routers
    app.include_router(health.router)
    app.include_router(enrichment.router)
    app.include_router(advisory.router)
    app.include_router(jobs.router)

    return app
