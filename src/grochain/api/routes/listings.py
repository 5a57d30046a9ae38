"""Marketplace listing routes.

Routes:
    GET    /api/v1/listings/{id}   — Listing details
    DELETE /api/v1/listings/{id}   — Withdraw a listing (status removed)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.api.deps import get_db_session, get_principal
from grochain.domain.principal import Principal
from grochain.schemas.marketplace import ListingResponse
from grochain.services.listing_service import ListingService

router = APIRouter(prefix="/api/v1/listings", tags=["Listings"])


@router.get("/{listing_id}", response_model=ListingResponse, summary="Get a listing")
async def get_listing(
    listing_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> ListingResponse:
    listing = await ListingService(session).get_listing(listing_id)
    return ListingResponse.model_validate(listing)


@router.delete("/{listing_id}", response_model=ListingResponse, summary="Remove a listing")
async def remove_listing(
    listing_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> ListingResponse:
    listing = await ListingService(session).remove_listing(principal, listing_id)
    return ListingResponse.model_validate(listing)
