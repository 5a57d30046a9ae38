"""Order routes.

Routes:
    POST   /api/v1/orders        — Checkout (buyer)
    GET    /api/v1/orders/{id}   — Order details (owner or admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.api.deps import get_db_session, get_principal
from grochain.domain.principal import Principal
from grochain.schemas.marketplace import CheckoutRequest, OrderResponse
from grochain.services.order_service import OrderService

router = APIRouter(prefix="/api/v1/orders", tags=["Orders"])


@router.post("", response_model=OrderResponse, status_code=201, summary="Checkout")
async def checkout(
    request: CheckoutRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    order = await OrderService(session).checkout(
        principal,
        items=[(item.listing_id, item.quantity) for item in request.items],
        shipping_address=request.shipping_address,
    )
    return OrderResponse.model_validate(order)


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
async def get_order(
    order_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    order = await OrderService(session).get_order(principal, order_id)
    return OrderResponse.model_validate(order)
