"""Commission REST API routes.

Routes:
    POST   /api/v1/commissions/calculate           — Preview the commission on an amount
    GET    /api/v1/commissions/tiers               — List commission tiers
    POST   /api/v1/commissions/tiers               — Create a tier (admin)
    GET    /api/v1/commissions/summary/{partner}   — Totals per status for a partner
    POST   /api/v1/commissions                     — Record a commission (admin)
    GET    /api/v1/commissions                     — Filtered, sorted, paginated list
    GET    /api/v1/commissions/{id}                — Commission details
    PATCH  /api/v1/commissions/{id}                — Edit a pending commission (admin)
    POST   /api/v1/commissions/{id}/approve        — pending -> approved
    POST   /api/v1/commissions/{id}/pay            — approved -> paid
    POST   /api/v1/commissions/{id}/cancel         — pending|approved -> cancelled
    POST   /api/v1/commissions/{id}/dispute        — pending|approved -> disputed
    PATCH  /api/v1/commissions/{id}/dispute        — under_review | resolved | closed
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.api.deps import get_db_session, get_principal
from grochain.domain.enums import UserRole
from grochain.domain.principal import Principal
from grochain.infrastructure.database.repositories import CommissionFilter
from grochain.schemas.commission import (
    ApproveCommissionRequest,
    CalculateCommissionRequest,
    CancelCommissionRequest,
    CommissionBreakdownResponse,
    CommissionCreateRequest,
    CommissionListQuery,
    CommissionPage,
    CommissionResponse,
    CommissionUpdateRequest,
    PartnerSummaryResponse,
    ProcessPaymentRequest,
    RaiseDisputeRequest,
    TierCreateRequest,
    TierResponse,
    UpdateDisputeRequest,
)
from grochain.schemas.common import PageMeta
from grochain.services.commission_service import CommissionService

router = APIRouter(prefix="/api/v1/commissions", tags=["Commissions"])


# ---------------------------------------------------------------------------
# Calculation & tiers
# ---------------------------------------------------------------------------


@router.post(
    "/calculate",
    response_model=CommissionBreakdownResponse,
    summary="Calculate the commission on a transaction amount",
)
async def calculate_commission(
    request: CalculateCommissionRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionBreakdownResponse:
    principal.require_role(UserRole.ADMIN, UserRole.PARTNER, action="calculate commissions")
    breakdown = await CommissionService(session).calculate(
        request.partner_id, request.transaction_amount, request.transaction_type
    )
    return CommissionBreakdownResponse(
        partner_id=request.partner_id,
        transaction_type=request.transaction_type,
        transaction_amount=breakdown.transaction_amount,
        commission_rate=breakdown.commission_rate,
        bonus_rate=breakdown.bonus_rate,
        effective_rate=breakdown.effective_rate,
        commission_amount=breakdown.commission_amount,
        tier_name=breakdown.tier_name,
    )


@router.get("/tiers", response_model=list[TierResponse], summary="List commission tiers")
async def list_tiers(
    active_only: bool = False,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> list[TierResponse]:
    principal.require_role(UserRole.ADMIN, UserRole.PARTNER, action="view commission tiers")
    tiers = await CommissionService(session).list_tiers(active_only=active_only)
    return [TierResponse.model_validate(t) for t in tiers]


@router.post(
    "/tiers",
    response_model=TierResponse,
    status_code=201,
    summary="Create a commission tier",
)
async def create_tier(
    request: TierCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> TierResponse:
    tier = await CommissionService(session).create_tier(principal, **request.model_dump())
    return TierResponse.model_validate(tier)


@router.get(
    "/summary/{partner_id}",
    response_model=PartnerSummaryResponse,
    summary="Commission totals per status for a partner",
)
async def partner_summary(
    partner_id: str,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> PartnerSummaryResponse:
    summary = await CommissionService(session).partner_summary(principal, partner_id)
    return PartnerSummaryResponse(**summary)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@router.post("", response_model=CommissionResponse, status_code=201, summary="Record a commission")
async def create_commission(
    request: CommissionCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).create_commission(
        principal, **request.model_dump()
    )
    return CommissionResponse.model_validate(commission)


@router.get("", response_model=CommissionPage, summary="List commissions")
async def list_commissions(
    query: Annotated[CommissionListQuery, Query()],
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionPage:
    filters = CommissionFilter(
        partner_id=query.partner_id,
        status=query.status.value if query.status else None,
        transaction_type=query.transaction_type.value if query.transaction_type else None,
        start_date=query.start_date,
        end_date=query.end_date,
        min_amount=query.min_amount,
        max_amount=query.max_amount,
        sort_by=query.sort_by,
        sort_order=query.sort_order,
    )
    page = await CommissionService(session).list_commissions(
        principal, filters, page=query.page, limit=query.limit
    )
    return CommissionPage(
        items=[CommissionResponse.model_validate(c) for c in page.items],
        meta=PageMeta(page=page.page, limit=page.limit, total=page.total, pages=page.pages),
    )


@router.get("/{commission_id}", response_model=CommissionResponse, summary="Get a commission")
async def get_commission(
    commission_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).get_commission(principal, commission_id)
    return CommissionResponse.model_validate(commission)


@router.patch(
    "/{commission_id}",
    response_model=CommissionResponse,
    summary="Edit a pending commission",
)
async def update_commission(
    commission_id: uuid.UUID,
    request: CommissionUpdateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).update_commission(
        principal, commission_id, **request.model_dump(exclude_unset=True)
    )
    return CommissionResponse.model_validate(commission)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/{commission_id}/approve",
    response_model=CommissionResponse,
    summary="Approve a pending commission",
)
async def approve_commission(
    commission_id: uuid.UUID,
    request: ApproveCommissionRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).approve(
        principal, commission_id, notes=request.notes
    )
    return CommissionResponse.model_validate(commission)


@router.post(
    "/{commission_id}/pay",
    response_model=CommissionResponse,
    summary="Record payout of an approved commission",
)
async def pay_commission(
    commission_id: uuid.UUID,
    request: ProcessPaymentRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).process_payment(
        principal,
        commission_id,
        payment_method=request.payment_method,
        payment_transaction_id=request.payment_transaction_id,
        notes=request.notes,
    )
    return CommissionResponse.model_validate(commission)


@router.post(
    "/{commission_id}/cancel",
    response_model=CommissionResponse,
    summary="Cancel a commission",
)
async def cancel_commission(
    commission_id: uuid.UUID,
    request: CancelCommissionRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).cancel(
        principal, commission_id, reason=request.reason
    )
    return CommissionResponse.model_validate(commission)


@router.post(
    "/{commission_id}/dispute",
    response_model=CommissionResponse,
    summary="Raise a dispute",
)
async def raise_dispute(
    commission_id: uuid.UUID,
    request: RaiseDisputeRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).raise_dispute(
        principal, commission_id, reason=request.reason
    )
    return CommissionResponse.model_validate(commission)


@router.patch(
    "/{commission_id}/dispute",
    response_model=CommissionResponse,
    summary="Advance an open dispute",
)
async def update_dispute(
    commission_id: uuid.UUID,
    request: UpdateDisputeRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
) -> CommissionResponse:
    commission = await CommissionService(session).update_dispute(
        principal,
        commission_id,
        dispute_status=request.dispute_status,
        resolution=request.resolution,
    )
    return CommissionResponse.model_validate(commission)
