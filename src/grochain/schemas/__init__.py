"""Pydantic API schemas."""

from grochain.schemas.commission import (
    CommissionCreateRequest,
    CommissionResponse,
    CommissionUpdateRequest,
    TierCreateRequest,
)
from grochain.schemas.common import DateRangeParams, ErrorResponse, HealthResponse, PaginationParams
from grochain.schemas.harvest import (
    ApproveHarvestRequest,
    HarvestResponse,
    RejectHarvestRequest,
    SubmitHarvestRequest,
)
from grochain.schemas.marketplace import CreateListingRequest, ListingResponse, OrderResponse
from grochain.schemas.payment import (
    InitializePaymentRequest,
    TransactionResponse,
    VerifyPaymentResponse,
)

__all__ = [
    "ApproveHarvestRequest",
    "CommissionCreateRequest",
    "CommissionResponse",
    "CommissionUpdateRequest",
    "CreateListingRequest",
    "DateRangeParams",
    "ErrorResponse",
    "HarvestResponse",
    "HealthResponse",
    "InitializePaymentRequest",
    "ListingResponse",
    "OrderResponse",
    "PaginationParams",
    "RejectHarvestRequest",
    "SubmitHarvestRequest",
    "TierCreateRequest",
    "TransactionResponse",
    "VerifyPaymentResponse",
]
