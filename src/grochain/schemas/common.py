"""Shared request/response building blocks."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves annotations at runtime
from typing import Self

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_PAGE_SIZE = 100


class PaginationParams(BaseModel):
    """Page/limit query. ``limit`` above the maximum is clamped, not rejected."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, value: int) -> int:
        return min(value, MAX_PAGE_SIZE)


class DateRangeParams(BaseModel):
    start_date: datetime | None = None
    end_date: datetime | None = None

    @model_validator(mode="after")
    def check_range(self) -> Self:
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: list | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    reconciler: str = "unknown"
