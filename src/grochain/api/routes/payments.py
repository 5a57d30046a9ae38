"""Payment routes.

Routes:
    POST   /api/v1/payments/initialize            — Open a checkout, record a pending transaction
    GET    /api/v1/payments/verify/{reference}    — Manual verification of one reference
    POST   /api/v1/payments/webhook               — Paystack webhook (signature-authenticated)
    POST   /api/v1/payments/reconcile             — Run one reconciliation pass now (admin)
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.api.deps import (
    get_app_settings,
    get_db_session,
    get_payment_provider,
    get_payment_verifier,
    get_principal,
    get_redis_client,
)
from grochain.config import Settings
from grochain.domain.enums import UserRole
from grochain.domain.principal import Principal
from grochain.domain.provider_protocol import PaymentProvider
from grochain.logging_config import get_logger
from grochain.schemas.payment import (
    InitializePaymentRequest,
    InitializePaymentResponse,
    ReconciliationReportResponse,
    TransactionResponse,
    VerifyPaymentResponse,
    WebhookAck,
)
from grochain.services.order_service import OrderService
from grochain.services.payment_verifier import PaymentVerifier
from grochain.services.webhook_service import WebhookService

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post(
    "/initialize",
    response_model=InitializePaymentResponse,
    status_code=201,
    summary="Initialize payment for an order",
)
async def initialize_payment(
    request: InitializePaymentRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db_session),
    provider: PaymentProvider = Depends(get_payment_provider),
    settings: Settings = Depends(get_app_settings),
) -> InitializePaymentResponse:
    transaction, checkout = await OrderService(session).initialize_payment(
        principal,
        order_id=request.order_id,
        amount=request.amount,
        email=request.email,
        provider=provider,
        currency=settings.paystack_currency,
    )
    return InitializePaymentResponse(
        reference=transaction.reference,
        authorization_url=checkout.authorization_url,
        access_code=checkout.access_code,
        transaction=TransactionResponse.model_validate(transaction),
    )


@router.get(
    "/verify/{reference}",
    response_model=VerifyPaymentResponse,
    summary="Verify one payment reference against the provider",
)
async def verify_payment(
    reference: str,
    principal: Principal = Depends(get_principal),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
) -> VerifyPaymentResponse:
    """404 for an unknown reference. Completed references are not re-sent to the provider."""
    logger.info("payment.manual_verify_requested", reference=reference, by=principal.user_id)
    result = await verifier.verify_reference(reference)
    return VerifyPaymentResponse(**result)


@router.post("/webhook", response_model=WebhookAck, summary="Paystack webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(default=None),
    session: AsyncSession = Depends(get_db_session),
    redis: aioredis.Redis = Depends(get_redis_client),
    settings: Settings = Depends(get_app_settings),
) -> WebhookAck:
    body = await request.body()
    result = await WebhookService(session, redis, settings).handle(body, x_paystack_signature)
    return WebhookAck(**result)


@router.post(
    "/reconcile",
    response_model=ReconciliationReportResponse,
    summary="Run one reconciliation pass now",
)
async def reconcile_now(
    principal: Principal = Depends(get_principal),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
) -> ReconciliationReportResponse:
    principal.require_role(UserRole.ADMIN, action="trigger reconciliation")
    report = await verifier.run_reconciliation_pass()
    return ReconciliationReportResponse(**report.to_dict())
