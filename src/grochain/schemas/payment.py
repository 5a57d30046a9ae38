"""Pydantic schemas for payment initialization, verification and reconciliation."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field


class InitializePaymentRequest(BaseModel):
    order_id: uuid.UUID
    amount: Decimal = Field(..., gt=0, description="Must equal the order total")
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reference: str
    order_id: uuid.UUID | None
    amount: Decimal
    currency: str
    status: str
    provider: str
    processed_at: datetime | None
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class InitializePaymentResponse(BaseModel):
    reference: str
    authorization_url: str
    access_code: str
    transaction: TransactionResponse


class SettlementResponse(BaseModel):
    reference: str
    transaction_status: str
    transaction_completed: bool
    order_paid: bool
    commissions_created: int


class ProviderVerificationResponse(BaseModel):
    success: bool
    paid: bool
    provider_status: str | None
    amount: str | None
    reference: str | None
    error: str | None


class VerifyPaymentResponse(BaseModel):
    reference: str
    verification: ProviderVerificationResponse | None
    settlement: SettlementResponse | None


class ReconciliationReportResponse(BaseModel):
    checked: int
    verified: int
    already_completed: int
    unpaid: int
    errors: int
    skipped: bool
    duration_ms: float


class WebhookAck(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str
