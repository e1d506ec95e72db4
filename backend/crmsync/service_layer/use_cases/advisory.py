# crmsync/service_layer/use_cases/advisory.py
from __future__ import annotations

import asyncio
import json
import logging
import weakref
from typing import Any, Mapping, Protocol

from pydantic import ValidationError

from ...adapters.credentials import OPENAI, CredentialResolver
from ...adapters.llm import LanguageModel
from ...config import settings
from ...domain.errors import EnrichmentError, InputValidationError, ProviderAuthMissing, ProviderError
from ...domain.profile import AdvisoryPayload
from ...models import EntityType
from ..advisory_cache import AdvisoryCache, AdvisoryRequest
from ..unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)

_SYSTEM_BY_ENTITY = {
    "company": "You coach a staffing sales rep on growing an account. Suggest concrete next actions.",
    "contact": "You coach a staffing sales rep on engaging one person. Suggest concrete next actions.",
    "deal": "You coach a staffing sales rep on moving a deal through its current stage. Suggest concrete next actions.",
}

_FORMAT_HINT = (
    'Reply with a JSON object: {"summary": string, "suggestions": [{"label": string, "action": string}]} '
    "with at most three suggestions."
)


class AdvisoryGenerator(Protocol):
    async def generate(self, req: AdvisoryRequest) -> AdvisoryPayload: ...


class LlmAdvisoryGenerator:
    """Builds the advisory from the stored record (when there is one) plus the request params."""

    def __init__(self, llm: LanguageModel, credentials: CredentialResolver, session_maker=None, *, model: str | None = None):
        self.llm = llm
        self.credentials = credentials
        self.session_maker = session_maker
        self.model = model or settings.OPENAI_ADVISORY_MODEL

    async def _entity_snapshot(self, req: AdvisoryRequest, entity_type: str) -> dict[str, Any]:
        if self.session_maker is None or entity_type not in (EntityType.company.value, EntityType.contact.value):
            return {}
        async with SqlAlchemyUnitOfWork(self.session_maker) as uow:
            rec = await uow.records.get(req.tenant_id, EntityType(entity_type), req.entity_id)
            if rec is None:
                return {}
            return {
                "data": rec.data or {},
                "leadScore": rec.lead_score,
                "leadSignals": rec.lead_signals or [],
            }

    async def generate(self, req: AdvisoryRequest) -> AdvisoryPayload:
        api_key = await self.credentials.resolve(req.tenant_id, OPENAI)
        if not api_key:
            raise ProviderAuthMissing(OPENAI, req.tenant_id)

        entity_type = str((req.params or {}).get("entityType") or "deal").lower()
        snapshot = await self._entity_snapshot(req, entity_type)
        prompt = "\n".join(
            [
                f"Stage: {req.stage_key}",
                _FORMAT_HINT,
                "[CONTEXT]",
                json.dumps({"params": dict(req.params or {}), "record": snapshot}, default=str)[:12000],
            ]
        )
        completion = await self.llm.generate_structured(
            api_key=api_key,
            system_prompt=_SYSTEM_BY_ENTITY.get(entity_type, _SYSTEM_BY_ENTITY["deal"]),
            user_prompt=prompt,
            model=self.model,
            max_completion_tokens=600,
        )
        try:
            raw = json.loads(completion.text or "")
            if not isinstance(raw, dict):
                raise ValueError("advisory response is not an object")
            return AdvisoryPayload.model_validate(raw)
        except (ValueError, ValidationError) as e:
            raise ProviderError(f"advisory response unusable: {e}") from e


class AdvisoryService:
    """
    Cache-fronted advisory generation. Fresh cache entries short-circuit in window
    order; identical in-process requests wait on one lock and reuse its result.
    """

    def __init__(self, cache: AdvisoryCache, generator: AdvisoryGenerator) -> None:
        self.cache = cache
        self.generator = generator
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, req: AdvisoryRequest) -> asyncio.Lock:
        lock = self._locks.get(req.stage_scope)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[req.stage_scope] = lock
        return lock

    @staticmethod
    def _hit_response(hit) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": True, "payload": hit.payload, "cacheHit": True}
        for flag in hit.flags:
            out[flag] = True
        return out

    async def generate_advisory(
        self,
        tenant_id: str,
        entity_id: str,
        stage_key: str,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not tenant_id or not entity_id or not stage_key:
            raise InputValidationError("tenant_id, entity_id and stage_key are required")
        req = AdvisoryRequest(tenant_id=tenant_id, entity_id=entity_id, stage_key=stage_key, params=dict(params or {}))

        hit = await self.cache.lookup(req)
        if hit is not None:
            log.info("advisory cache hit window=%s scope=%s", hit.window.name, req.stage_scope)
            return self._hit_response(hit)

        lock = self._lock_for(req)
        async with lock:
            # someone may have finished while we waited
            hit = await self.cache.lookup(req)
            if hit is not None:
                return self._hit_response(hit)

            try:
                payload = await self.generator.generate(req)
            except EnrichmentError as e:
                log.warning("advisory generation failed scope=%s err=%s", req.stage_scope, e)
                return {"ok": False, "error": str(e)}

            doc = payload.to_doc()
            await self.cache.store(req, doc)
            return {"ok": True, "payload": doc, "cacheHit": False}
