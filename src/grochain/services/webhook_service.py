"""Paystack webhook intake.

Deliveries are authenticated by the HMAC-SHA512 ``x-paystack-signature``
header, deduplicated through a Redis idempotency key per (event, reference),
and ``charge.success`` events run the same settlement path as the poller.
The settlement is committed before the delivery counts as handled; any
failure up to and including the commit releases the idempotency key.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from grochain.config import get_settings
from grochain.domain.exceptions import ValidationError, WebhookSignatureError
from grochain.domain.provider_protocol import ProviderVerification
from grochain.infrastructure.paystack_client import PAID_STATUS, verify_webhook_signature
from grochain.infrastructure.redis_client import claim_idempotency, release_idempotency
from grochain.logging_config import get_logger
from grochain.services.payment_reconciler import PaymentReconciler

if TYPE_CHECKING:
    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

    from grochain.config import Settings

logger = get_logger(__name__)

CHARGE_SUCCESS = "charge.success"


class WebhookService:
    def __init__(
        self,
        session: AsyncSession,
        redis: aioredis.Redis,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._redis = redis
        self._settings = settings or get_settings()

    async def handle(self, raw_body: bytes, signature: str | None) -> dict:
        """Authenticate, parse and apply one webhook delivery."""
        if not verify_webhook_signature(self._settings.paystack_secret_key, raw_body, signature):
            logger.warning("webhook.invalid_signature")
            raise WebhookSignatureError()

        try:
            payload = json.loads(raw_body)
        except ValueError as err:
            raise ValidationError("Webhook body is not valid JSON", code="INVALID_WEBHOOK") from err

        event = payload.get("event") if isinstance(payload, dict) else None
        data = payload.get("data") if isinstance(payload, dict) else None
        if not event or not isinstance(data, dict):
            raise ValidationError("Webhook payload needs 'event' and 'data'", code="INVALID_WEBHOOK")

        if event != CHARGE_SUCCESS:
            logger.info("webhook.ignored", webhook_event=event)
            return {"status": "ignored", "event": event}

        reference = data.get("reference")
        if not reference:
            raise ValidationError("charge.success without a reference", code="INVALID_WEBHOOK")

        key = f"paystack:{event}:{reference}"
        if not await claim_idempotency(self._redis, key):
            logger.info("webhook.duplicate", reference=reference)
            return {"status": "duplicate", "event": event, "reference": reference}

        try:
            verification = ProviderVerification(
                success=True,
                paid=data.get("status") == PAID_STATUS,
                provider_status=data.get("status"),
                amount=_amount(data.get("amount")),
                reference=reference,
                raw=data,
            )
            if not verification.paid:
                logger.info(
                    "webhook.charge_not_successful",
                    reference=reference,
                    provider_status=verification.provider_status,
                )
                return {"status": "ignored", "event": event, "reference": reference}

            settlement = await PaymentReconciler(self._session, self._settings).settle_paid(
                reference, verification, source="webhook"
            )
            await self._session.commit()
        except Exception:
            # Let the provider's retry get through.
            await release_idempotency(self._redis, key)
            raise

        logger.info("webhook.processed", reference=reference, order_paid=settlement.order_paid)
        return {"status": "processed", "event": event, **settlement.to_dict()}


def _amount(value: object) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
