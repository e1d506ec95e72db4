# crmsync/entrypoints/api/routers/advisory.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_advisory_service, require_api_key
from ....schemas import AdvisoryIn, AdvisoryOut
from ....service_layer.use_cases.advisory import AdvisoryService

router = APIRouter(tags=["advisory"])


@router.post(
    "/advisory",
    response_model=AdvisoryOut,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
)
async def generate_advisory(
    body: AdvisoryIn,
    svc: AdvisoryService = Depends(get_advisory_service),
) -> AdvisoryOut:
    res = await svc.generate_advisory(body.tenant_id, body.entity_id, body.stage_key, body.params)
    return AdvisoryOut(**res)
