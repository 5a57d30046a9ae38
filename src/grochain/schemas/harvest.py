"""Pydantic schemas for harvest submission and the approval gate."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from grochain.domain.enums import HarvestUnit, QualityGrade
from grochain.schemas.common import DateRangeParams, PageMeta, PaginationParams

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class SubmitHarvestRequest(BaseModel):
    """Request body for a farmer logging a harvest batch."""

    crop_type: str = Field(..., min_length=1, max_length=100, examples=["Maize"])
    quantity: Decimal = Field(..., gt=0, examples=[500])
    unit: HarvestUnit = HarvestUnit.KG
    location: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    quality: QualityGrade | None = None
    partner_id: str | None = Field(
        default=None,
        max_length=64,
        description="Onboarding partner of the farmer (commission beneficiary)",
    )


class ApproveHarvestRequest(BaseModel):
    quality: QualityGrade
    notes: str | None = Field(default=None, max_length=1000)


class RejectHarvestRequest(BaseModel):
    """Whitespace-only reasons pass the schema and are rejected by the service."""

    model_config = ConfigDict(populate_by_name=True)

    rejection_reason: str = Field(..., alias="rejectionReason", max_length=1000)


class BulkProcessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    harvest_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=100, alias="harvestIds")
    action: Literal["approve", "reject"]
    quality: QualityGrade | None = None
    rejection_reason: str | None = Field(default=None, alias="rejectionReason", max_length=1000)

    @model_validator(mode="after")
    def check_action_fields(self) -> Self:
        if self.action == "approve" and self.quality is None:
            raise ValueError("quality is required when approving")
        if self.action == "reject" and not (self.rejection_reason or "").strip():
            raise ValueError("rejectionReason is required when rejecting")
        return self


class PendingHarvestQuery(PaginationParams):
    crop_type: str | None = None
    location: str | None = None


class HarvestStatsQuery(DateRangeParams):
    partner_id: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class HarvestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    batch_id: str
    farmer_id: str
    partner_id: str | None
    crop_type: str
    quantity: Decimal
    unit: str
    location: str | None
    description: str | None
    quality: str | None
    status: str
    verified_by: str | None
    verified_at: datetime | None
    rejection_reason: str | None
    approval_notes: str | None
    created_at: datetime
    updated_at: datetime


class PendingHarvestPage(BaseModel):
    items: list[HarvestResponse]
    meta: PageMeta


class BulkProcessResponse(BaseModel):
    action: str
    processed: int


class HarvestStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    approval_rate: float
    quality_distribution: dict[str, int]
    crop_distribution: dict[str, int]
