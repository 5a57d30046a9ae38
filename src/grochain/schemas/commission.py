"""Pydantic schemas for commissions and commission tiers.

These are the server-side validation contract: amounts positive, rates within
[0, 100], date ranges with end_date after start_date, page sizes clamped.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from grochain.domain.enums import (
    CommissionStatus,
    DisputeStatus,
    PaymentMethod,
    TransactionType,
)
from grochain.schemas.common import DateRangeParams, PageMeta, PaginationParams

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CommissionCreateRequest(BaseModel):
    """Manual commission entry. Omit ``commission_rate`` to use the tier table."""

    partner_id: str = Field(..., min_length=1, max_length=64)
    transaction_id: str = Field(..., min_length=1, max_length=100)
    transaction_type: TransactionType = TransactionType.MARKETPLACE_SALE
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    commission_rate: Decimal | None = Field(default=None, ge=0, le=100, decimal_places=2)
    bonus_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100, decimal_places=2)
    commission_amount: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    currency: str = Field(default="NGN", min_length=3, max_length=3)
    due_date: datetime | None = None
    description: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_rate_total(self) -> Self:
        if self.commission_rate is not None and self.commission_rate + self.bonus_rate > 100:
            raise ValueError("commission_rate + bonus_rate must not exceed 100")
        return self


class CommissionUpdateRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0, max_digits=14, decimal_places=2)
    commission_rate: Decimal | None = Field(default=None, ge=0, le=100, decimal_places=2)
    bonus_rate: Decimal | None = Field(default=None, ge=0, le=100, decimal_places=2)
    due_date: datetime | None = None
    description: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=1000)


class CalculateCommissionRequest(BaseModel):
    partner_id: str = Field(..., min_length=1, max_length=64)
    transaction_amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    transaction_type: TransactionType = TransactionType.MARKETPLACE_SALE


class ApproveCommissionRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class ProcessPaymentRequest(BaseModel):
    payment_method: PaymentMethod
    payment_transaction_id: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)


class CancelCommissionRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class RaiseDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=10, max_length=500)


class UpdateDisputeRequest(BaseModel):
    dispute_status: DisputeStatus = Field(..., description="under_review, resolved or closed")
    resolution: str | None = Field(default=None, max_length=1000)


class CommissionListQuery(PaginationParams, DateRangeParams):
    partner_id: str | None = None
    status: CommissionStatus | None = None
    transaction_type: TransactionType | None = None
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    sort_by: Literal["created_at", "amount", "commission_amount", "due_date", "status"] = (
        "created_at"
    )
    sort_order: Literal["asc", "desc"] = "desc"

    @model_validator(mode="after")
    def check_amount_range(self) -> Self:
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.max_amount < self.min_amount
        ):
            raise ValueError("max_amount must not be below min_amount")
        return self


class TierCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    min_transactions: int = Field(default=0, ge=0)
    max_transactions: int | None = Field(default=None, ge=0)
    min_amount: Decimal = Field(default=Decimal("0"), ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    commission_rate: Decimal = Field(..., ge=0, le=100, decimal_places=2)
    bonus_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100, decimal_places=2)
    is_active: bool = True

    @model_validator(mode="after")
    def check_bounds(self) -> Self:
        if self.max_transactions is not None and self.max_transactions < self.min_transactions:
            raise ValueError("max_transactions must not be below min_transactions")
        if self.max_amount is not None and self.max_amount < self.min_amount:
            raise ValueError("max_amount must not be below min_amount")
        return self


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class CommissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    partner_id: str
    transaction_id: str
    transaction_type: str
    amount: Decimal
    commission_rate: Decimal
    bonus_rate: Decimal
    commission_amount: Decimal
    currency: str
    status: str
    due_date: datetime | None
    description: str | None
    notes: str | None
    approved_by: str | None
    approved_at: datetime | None
    paid_by: str | None
    paid_at: datetime | None
    payment_method: str | None
    payment_transaction_id: str | None
    dispute_status: str | None
    dispute_reason: str | None
    dispute_resolution: str | None
    created_at: datetime
    updated_at: datetime


class CommissionPage(BaseModel):
    items: list[CommissionResponse]
    meta: PageMeta


class CommissionBreakdownResponse(BaseModel):
    partner_id: str
    transaction_type: TransactionType
    transaction_amount: Decimal
    commission_rate: Decimal
    bonus_rate: Decimal
    effective_rate: Decimal
    commission_amount: Decimal
    tier_name: str | None


class TierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    min_transactions: int
    max_transactions: int | None
    min_amount: Decimal
    max_amount: Decimal | None
    commission_rate: Decimal
    bonus_rate: Decimal
    is_active: bool


class StatusTotal(BaseModel):
    count: int
    amount: Decimal


class PartnerSummaryResponse(BaseModel):
    partner_id: str
    total_count: int
    total_earned: Decimal
    total_paid: Decimal
    outstanding: Decimal
    by_status: dict[str, StatusTotal]
