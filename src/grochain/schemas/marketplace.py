"""Pydantic schemas for listings and checkout."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field


class CreateListingRequest(BaseModel):
    price: Decimal = Field(..., gt=0, description="Unit price in NGN", examples=[1200])
    description: str | None = Field(default=None, max_length=2000)


class ListingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    harvest_id: uuid.UUID
    farmer_id: str
    crop_name: str
    price: Decimal
    quantity: Decimal
    unit: str
    description: str | None
    quality: str | None
    location: str | None
    status: str
    created_at: datetime
    updated_at: datetime


class CheckoutItem(BaseModel):
    listing_id: uuid.UUID
    quantity: Decimal = Field(..., gt=0)


class CheckoutRequest(BaseModel):
    items: list[CheckoutItem] = Field(..., min_length=1, max_length=50)
    shipping_address: str | None = Field(default=None, max_length=500)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    listing_id: uuid.UUID
    quantity: Decimal
    unit_price: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    buyer_id: str
    total: Decimal
    status: str
    payment_status: str
    payment_reference: str | None
    items: list[OrderItemResponse]
    created_at: datetime
