"""Factory functions and in-process doubles shared by the test modules."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from grochain.domain.provider_protocol import PaymentInitialization, ProviderVerification
from grochain.infrastructure.database.orm_models import (
    Harvest,
    MarketplaceListing,
    Order,
    OrderItem,
    Transaction,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


async def make_harvest(
    session: AsyncSession,
    farmer_id: str = "farmer-1",
    partner_id: str | None = "partner-1",
    status: str = "pending",
    crop_type: str = "Maize",
    quantity: Decimal = Decimal("500"),
    quality: str | None = None,
    location: str | None = "Kaduna",
    verified_by: str | None = None,
    verified_at: datetime | None = None,
) -> Harvest:
    if quality is None and status == "approved":
        quality = "good"
    if status in ("approved", "rejected"):
        verified_by = verified_by or partner_id or "admin-1"
        verified_at = verified_at or datetime.now(UTC)
    harvest = Harvest(
        farmer_id=farmer_id,
        partner_id=partner_id,
        crop_type=crop_type,
        quantity=quantity,
        unit="kg",
        location=location,
        quality=quality,
        status=status,
        verified_by=verified_by,
        verified_at=verified_at,
    )
    session.add(harvest)
    await session.flush()
    return harvest


async def make_listing(
    session: AsyncSession,
    harvest: Harvest,
    price: Decimal = Decimal("100.00"),
    quantity: Decimal | None = None,
) -> MarketplaceListing:
    listing = MarketplaceListing(
        harvest_id=harvest.id,
        farmer_id=harvest.farmer_id,
        crop_name=harvest.crop_type,
        price=price,
        quantity=quantity if quantity is not None else harvest.quantity,
        unit=harvest.unit,
        quality=harvest.quality,
        location=harvest.location,
        status="active",
    )
    session.add(listing)
    await session.flush()
    return listing


async def make_order(
    session: AsyncSession,
    listing: MarketplaceListing,
    quantity: Decimal = Decimal("5"),
    buyer_id: str = "buyer-1",
) -> Order:
    order = Order(
        buyer_id=buyer_id,
        total=(quantity * listing.price).quantize(Decimal("0.01")),
        status="pending",
        payment_status="pending",
        items=[OrderItem(listing_id=listing.id, quantity=quantity, unit_price=listing.price)],
    )
    session.add(order)
    await session.flush()
    return order


async def make_transaction(
    session: AsyncSession,
    reference: str | None = None,
    order: Order | None = None,
    amount: Decimal = Decimal("500.00"),
    status: str = "pending",
    **kwargs,
) -> Transaction:
    transaction = Transaction(
        reference=reference or f"GROCHAIN_TEST_{uuid.uuid4().hex[:12]}",
        order_id=order.id if order is not None else None,
        user_id=order.buyer_id if order is not None else "buyer-1",
        amount=order.total if order is not None else amount,
        currency="NGN",
        status=status,
        provider="paystack",
        **kwargs,
    )
    session.add(transaction)
    await session.flush()
    return transaction


async def make_sale(
    session: AsyncSession,
    reference: str = "TX1",
    partner_id: str | None = "partner-1",
    price: Decimal = Decimal("10000.00"),
    quantity: Decimal = Decimal("5"),
) -> tuple[Harvest, MarketplaceListing, Order, Transaction]:
    """Approved harvest -> listing -> pending order -> pending transaction."""
    harvest = await make_harvest(session, status="approved", partner_id=partner_id)
    listing = await make_listing(session, harvest, price=price)
    order = await make_order(session, listing, quantity=quantity)
    transaction = await make_transaction(session, reference=reference, order=order)
    return harvest, listing, order, transaction


def paid_verification(reference: str, amount_kobo: int = 5_000_000) -> ProviderVerification:
    return ProviderVerification(
        success=True,
        paid=True,
        provider_status="success",
        amount=Decimal(amount_kobo),
        reference=reference,
        raw={"reference": reference, "status": "success", "amount": amount_kobo},
    )


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


class FakeProvider:
    """PaymentProvider double with scripted answers per reference.

    Unscripted references are reported as abandoned (verified, not paid).
    """

    name = "paystack"

    def __init__(
        self,
        results: dict[str, ProviderVerification] | None = None,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
        error: Exception | None = None,
    ) -> None:
        self.results = dict(results or {})
        self.delay = delay
        self.gate = gate
        self.error = error
        self.verify_calls: list[str] = []
        self.initialized: list[dict] = []

    async def verify_transaction(self, reference: str) -> ProviderVerification:
        self.verify_calls.append(reference)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results.get(
            reference,
            ProviderVerification(
                success=True, paid=False, provider_status="abandoned", reference=reference
            ),
        )

    async def initialize_transaction(
        self,
        reference: str,
        amount: Decimal,
        email: str,
        metadata: dict | None = None,
    ) -> PaymentInitialization:
        self.initialized.append({"reference": reference, "amount": amount, "email": email})
        return PaymentInitialization(
            reference=reference,
            authorization_url=f"https://checkout.paystack.test/{reference}",
            access_code="ac_test",
        )

    async def aclose(self) -> None:
        pass


class FakeRedis:
    """The slice of redis.asyncio.Redis used for idempotency keys."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def ping(self) -> bool:
        return True
