"""Paystack API client.

Wraps the two Paystack endpoints the reconciliation flow needs:

    GET  /transaction/verify/{reference}   -> verify_transaction
    POST /transaction/initialize           -> initialize_transaction

plus the HMAC-SHA512 check of webhook deliveries.

verify_transaction NEVER raises: timeouts, network errors, non-JSON bodies and
``"status": false`` answers all come back as an unsuccessful
ProviderVerification, so the caller can leave the transaction pending and let
the next pass retry.

Usage:
    async with PaystackClient.from_settings(get_settings()) as client:
        result = await client.verify_transaction("GROCHAIN_...")
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from grochain.domain.exceptions import PaymentProviderError
from grochain.domain.provider_protocol import PaymentInitialization, ProviderVerification
from grochain.logging_config import get_logger

if TYPE_CHECKING:
    from grochain.config import Settings

logger = get_logger(__name__)

PAID_STATUS = "success"


def verify_webhook_signature(secret_key: str, body: bytes, signature: str | None) -> bool:
    """Check the ``x-paystack-signature`` header against the raw request body."""
    if not signature or not secret_key:
        return False
    expected = hmac.new(secret_key.encode(), body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class PaystackClient:
    """Async Paystack client satisfying the PaymentProvider protocol."""

    name = "paystack"

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> PaystackClient:
        return cls(
            secret_key=settings.paystack_secret_key,
            base_url=settings.paystack_base_url,
            timeout=settings.paystack_timeout_seconds,
        )

    async def __aenter__(self) -> PaystackClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.2, max=1),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.RemoteProtocolError)),
        reraise=True,
    )
    async def _get_verification(self, reference: str) -> httpx.Response:
        """GET the verify endpoint. Dropped connections are retried once; timeouts are not."""
        return await self._client.get(f"/transaction/verify/{reference}")

    async def verify_transaction(self, reference: str) -> ProviderVerification:
        """Ask Paystack whether ``reference`` has been paid."""
        try:
            response = await self._get_verification(reference)
        except httpx.TimeoutException:
            logger.warning("paystack.verify_timeout", reference=reference, timeout=self._timeout)
            return ProviderVerification.failed(f"timeout after {self._timeout}s")
        except httpx.HTTPError as e:
            logger.warning("paystack.verify_network_error", reference=reference, error=str(e))
            return ProviderVerification.failed(f"network error: {e}")

        try:
            body = response.json()
        except ValueError:
            logger.warning(
                "paystack.verify_invalid_body",
                reference=reference,
                status_code=response.status_code,
            )
            return ProviderVerification.failed(f"non-JSON response (HTTP {response.status_code})")

        if not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.info(
                "paystack.verify_rejected",
                reference=reference,
                status_code=response.status_code,
                message=message,
            )
            return ProviderVerification.failed(message or f"HTTP {response.status_code}")

        data = body.get("data")
        if not isinstance(data, dict):
            return ProviderVerification.failed("response carried no data object")

        provider_status = data.get("status")
        result = ProviderVerification(
            success=True,
            paid=provider_status == PAID_STATUS,
            provider_status=provider_status,
            amount=_to_decimal(data.get("amount")),
            reference=data.get("reference", reference),
            raw=data,
        )
        logger.debug(
            "paystack.verify_completed",
            reference=reference,
            provider_status=provider_status,
            paid=result.paid,
        )
        return result

    async def initialize_transaction(
        self,
        reference: str,
        amount: Decimal,
        email: str,
        metadata: dict | None = None,
    ) -> PaymentInitialization:
        """Open a Paystack checkout. ``amount`` is in major units (naira)."""
        payload = {
            "reference": reference,
            "amount": int((amount * 100).to_integral_value()),
            "email": email,
            "metadata": metadata or {},
        }
        try:
            response = await self._client.post("/transaction/initialize", json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("paystack.initialize_failed", reference=reference, error=str(e))
            raise PaymentProviderError(f"Payment initialization failed: {e}", reference) from e

        if not isinstance(body, dict) or not body.get("status") or not body.get("data"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.error("paystack.initialize_rejected", reference=reference, message=message)
            raise PaymentProviderError(
                f"Payment initialization rejected: {message or response.status_code}",
                reference,
            )

        data = body["data"]
        logger.info("paystack.initialized", reference=reference)
        return PaymentInitialization(
            reference=data.get("reference", reference),
            authorization_url=data.get("authorization_url", ""),
            access_code=data.get("access_code", ""),
        )
