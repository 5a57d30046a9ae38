"""Checkout and payment initialization.

An order snapshots listing prices at checkout. Payment initialization opens a
provider checkout and records the ``pending`` Transaction that the payment
verifier later reconciles.
"""

from __future__ import annotations

import secrets
import time
from decimal import Decimal
from typing import TYPE_CHECKING

from grochain.domain.enums import (
    ListingStatus,
    OrderStatus,
    PaymentStatus,
    TransactionStatus,
    UserRole,
)
from grochain.domain.exceptions import (
    AuthorizationError,
    InsufficientStockError,
    ListingNotFoundError,
    OrderAlreadyPaidError,
    OrderNotFoundError,
    OrderNotPayableError,
    ValidationError,
)
from grochain.infrastructure.database.orm_models import Order, OrderItem, Transaction
from grochain.infrastructure.database.repositories import (
    ListingRepository,
    OrderRepository,
    TransactionRepository,
)
from grochain.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from grochain.domain.principal import Principal
    from grochain.domain.provider_protocol import PaymentInitialization, PaymentProvider

logger = get_logger(__name__)

REFERENCE_PREFIX = "GROCHAIN"


def generate_reference() -> str:
    """``GROCHAIN_{epoch_ms}_{16 hex chars}``."""
    return f"{REFERENCE_PREFIX}_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


class OrderService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._order_repo = OrderRepository(session)
        self._listing_repo = ListingRepository(session)
        self._transaction_repo = TransactionRepository(session)

    async def checkout(
        self,
        principal: Principal,
        items: list[tuple[uuid.UUID, Decimal]],
        shipping_address: str | None = None,
    ) -> Order:
        """Create a pending order for ``(listing_id, quantity)`` pairs."""
        principal.require_role(UserRole.BUYER, UserRole.ADMIN, action="place orders")
        if not items:
            raise ValidationError("An order needs at least one item", code="EMPTY_ORDER")

        listings = await self._listing_repo.get_many([listing_id for listing_id, _ in items])
        order_items = []
        total = Decimal("0")
        for listing_id, quantity in items:
            listing = listings.get(listing_id)
            if listing is None or listing.status == ListingStatus.REMOVED.value:
                raise ListingNotFoundError(str(listing_id))
            if listing.status != ListingStatus.ACTIVE.value or listing.quantity < quantity:
                raise InsufficientStockError(str(listing_id), str(quantity), str(listing.quantity))
            order_items.append(
                OrderItem(listing_id=listing.id, quantity=quantity, unit_price=listing.price)
            )
            total += quantity * listing.price

        order = Order(
            buyer_id=principal.user_id,
            total=total.quantize(Decimal("0.01")),
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            shipping_address=shipping_address,
            items=order_items,
        )
        order = await self._order_repo.create(order)
        logger.info(
            "order.created",
            order_id=str(order.id),
            buyer_id=principal.user_id,
            total=str(order.total),
            items=len(order_items),
        )
        return order

    async def get_order(self, principal: Principal, order_id: uuid.UUID) -> Order:
        order = await self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        if not principal.is_admin and order.buyer_id != principal.user_id:
            raise AuthorizationError("Buyers can only access their own orders")
        return order

    async def initialize_payment(
        self,
        principal: Principal,
        order_id: uuid.UUID,
        amount: Decimal,
        email: str,
        provider: PaymentProvider,
        currency: str = "NGN",
    ) -> tuple[Transaction, PaymentInitialization]:
        """Record a pending Transaction for an unpaid order and open a checkout."""
        principal.require_role(UserRole.BUYER, UserRole.ADMIN, action="pay for orders")
        order = await self.get_order(principal, order_id)
        if PaymentStatus.PAID.value in (order.status, order.payment_status):
            raise OrderAlreadyPaidError(str(order_id))
        if order.status != OrderStatus.PENDING.value:
            raise OrderNotPayableError(str(order_id), order.status)
        if amount != order.total:
            raise ValidationError(
                f"Payment amount {amount} does not match order total {order.total}",
                code="AMOUNT_MISMATCH",
            )

        reference = generate_reference()
        transaction = await self._transaction_repo.create(
            Transaction(
                reference=reference,
                order_id=order.id,
                user_id=principal.user_id,
                amount=amount,
                currency=currency,
                status=TransactionStatus.PENDING.value,
                provider=provider.name,
                metadata_json={"order_id": str(order.id)},
            )
        )
        checkout = await provider.initialize_transaction(
            reference=reference,
            amount=amount,
            email=email,
            metadata={"order_id": str(order.id), "buyer_id": principal.user_id},
        )
        logger.info(
            "payment.initialized",
            reference=reference,
            order_id=str(order.id),
            amount=str(amount),
        )
        return transaction, checkout
