"""Payment provider protocol.

The two calls the payment flow makes against a provider (verify a reference,
open a checkout) and the value objects they return. PaystackClient and the
test doubles satisfy it structurally.

Nothing here imports httpx or a provider SDK.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ProviderVerification:
    """Normalized answer to "did this reference get paid?".

    Attributes:
        success: The provider answered with a well-formed verification payload.
        paid: The provider reports the charge as settled ("success").
        provider_status: Raw status string from the provider (e.g. "abandoned").
        amount: Amount reported by the provider, in the provider's minor unit.
        reference: Reference echoed back by the provider.
        error: Why the verification was unsuccessful (network, timeout, ...).
        raw: The provider's ``data`` object, kept for the audit metadata.
    """

    success: bool
    paid: bool = False
    provider_status: str | None = None
    amount: Decimal | None = None
    reference: str | None = None
    error: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def failed(cls, error: str) -> ProviderVerification:
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        """Serialize for the transaction metadata JSON column."""
        return {
            "success": self.success,
            "paid": self.paid,
            "provider_status": self.provider_status,
            "amount": str(self.amount) if self.amount is not None else None,
            "reference": self.reference,
            "error": self.error,
        }


@dataclass(frozen=True)
class PaymentInitialization:
    """Checkout handle returned by the provider for a new reference."""

    reference: str
    authorization_url: str
    access_code: str


@runtime_checkable
class PaymentProvider(Protocol):
    """Protocol the Paystack client (and test doubles) must satisfy."""

    name: str

    async def verify_transaction(self, reference: str) -> ProviderVerification:
        """Ask the provider about ``reference``. Must never raise."""
        ...

    async def initialize_transaction(
        self,
        reference: str,
        amount: Decimal,
        email: str,
        metadata: dict | None = None,
    ) -> PaymentInitialization:
        """Open a checkout for ``reference``. Raises PaymentProviderError on failure."""
        ...
