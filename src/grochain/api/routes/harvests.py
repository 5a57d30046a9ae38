"""Harvest submission routes.

Routes:
    POST   /api/v1/harvests   — Farmer logs a new harvest batch (pending)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.api.deps import get_db_session, get_principal
from grochain.domain.principal import Principal
from grochain.schemas.harvest import HarvestResponse, SubmitHarvestRequest
from grochain.services.harvest_service import HarvestService

router = APIRouter(prefix="/api/v1/harvests", tags=["Harvests"])


@router.post(
    "",
    response_model=HarvestResponse,
    status_code=201,
    summary="Submit a harvest batch",
)
async def submit_harvest(
    request: SubmitHarvestRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> HarvestResponse:
    """Record a harvest in ``pending`` awaiting partner/admin approval."""
    harvest = await HarvestService(session).submit_harvest(
        principal,
        crop_type=request.crop_type,
        quantity=request.quantity,
        unit=request.unit.value,
        location=request.location,
        description=request.description,
        quality=request.quality.value if request.quality else None,
        partner_id=request.partner_id,
    )
    return HarvestResponse.model_validate(harvest)
