"""Harvest Approval Gate routes.

Routes:
    GET    /api/v1/harvest-approval/pending               — Caller's review queue (FIFO)
    GET    /api/v1/harvest-approval/stats                 — Approval statistics
    POST   /api/v1/harvest-approval/bulk                  — Approve/reject many at once
    PATCH  /api/v1/harvest-approval/{id}/approve          — Approve a pending harvest
    PATCH  /api/v1/harvest-approval/{id}/reject           — Reject a pending harvest
    POST   /api/v1/harvest-approval/{id}/create-listing   — Publish an approved harvest
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.api.deps import get_db_session, get_principal
from grochain.domain.principal import Principal
from grochain.schemas.common import PageMeta
from grochain.schemas.harvest import (
    ApproveHarvestRequest,
    BulkProcessRequest,
    BulkProcessResponse,
    HarvestResponse,
    HarvestStatsQuery,
    HarvestStatsResponse,
    PendingHarvestPage,
    PendingHarvestQuery,
    RejectHarvestRequest,
)
from grochain.schemas.marketplace import CreateListingRequest, ListingResponse
from grochain.services.harvest_service import HarvestService
from grochain.services.listing_service import ListingService

router = APIRouter(prefix="/api/v1/harvest-approval", tags=["Harvest Approval"])


@router.get(
    "/pending",
    response_model=PendingHarvestPage,
    summary="Pending harvests for the caller's approval queue",
)
async def list_pending(
    query: Annotated[PendingHarvestQuery, Query()],
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> PendingHarvestPage:
    page = await HarvestService(session).pending_for_approver(
        principal,
        crop_type=query.crop_type,
        location=query.location,
        page=query.page,
        limit=query.limit,
    )
    return PendingHarvestPage(
        items=[HarvestResponse.model_validate(h) for h in page.items],
        meta=PageMeta(page=page.page, limit=page.limit, total=page.total, pages=page.pages),
    )


@router.get(
    "/stats",
    response_model=HarvestStatsResponse,
    summary="Approval statistics",
)
async def approval_stats(
    query: Annotated[HarvestStatsQuery, Query()],
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> HarvestStatsResponse:
    stats = await HarvestService(session).approval_stats(
        principal,
        partner_id=query.partner_id,
        start_date=query.start_date,
        end_date=query.end_date,
    )
    return HarvestStatsResponse(**stats)


@router.post(
    "/bulk",
    response_model=BulkProcessResponse,
    summary="Approve or reject several pending harvests",
)
async def bulk_process(
    request: BulkProcessRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> BulkProcessResponse:
    processed = await HarvestService(session).bulk_process(
        principal,
        harvest_ids=request.harvest_ids,
        action=request.action,
        quality=request.quality,
        rejection_reason=request.rejection_reason,
    )
    return BulkProcessResponse(action=request.action, processed=processed)


@router.patch(
    "/{harvest_id}/approve",
    response_model=HarvestResponse,
    summary="Approve a pending harvest",
)
async def approve_harvest(
    harvest_id: uuid.UUID,
    request: ApproveHarvestRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> HarvestResponse:
    """Transitions pending -> approved. 404 if missing or no longer pending."""
    harvest = await HarvestService(session).approve(
        principal, harvest_id, quality=request.quality, notes=request.notes
    )
    return HarvestResponse.model_validate(harvest)


@router.patch(
    "/{harvest_id}/reject",
    response_model=HarvestResponse,
    summary="Reject a pending harvest",
)
async def reject_harvest(
    harvest_id: uuid.UUID,
    request: RejectHarvestRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> HarvestResponse:
    """Transitions pending -> rejected. 400 without a reason."""
    harvest = await HarvestService(session).reject(
        principal, harvest_id, reason=request.rejection_reason
    )
    return HarvestResponse.model_validate(harvest)


@router.post(
    "/{harvest_id}/create-listing",
    response_model=ListingResponse,
    status_code=201,
    summary="Publish a marketplace listing for an approved harvest",
)
async def create_listing(
    harvest_id: uuid.UUID,
    request: CreateListingRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> ListingResponse:
    """409 if the harvest already has a listing or is not approved."""
    listing = await ListingService(session).create_listing_from_harvest(
        principal,
        harvest_id,
        price=request.price,
        description=request.description,
    )
    return ListingResponse.model_validate(listing)
