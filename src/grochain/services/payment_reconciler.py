"""Applies a provider verification to local state.

The completion path shared by the poller, the manual verify endpoint and the
Paystack webhook. It runs inside ONE session the caller owns, in two
idempotent steps:

    1. Transaction pending -> completed   (conditional UPDATE on reference+status)
    2. Order pending -> paid              (conditional UPDATE on status + payment_status)

Listing stock and partner commissions are side effects of step 2 and run only
for the call that actually moved the order to paid, so replays converge
instead of double-crediting.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from grochain.domain.enums import ListingStatus, OrderStatus, TransactionStatus, TransactionType
from grochain.domain.exceptions import TransactionNotFoundError
from grochain.infrastructure.database.repositories import (
    HarvestRepository,
    ListingRepository,
    OrderRepository,
    TransactionRepository,
)
from grochain.logging_config import get_logger
from grochain.services.commission_service import CommissionService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from grochain.config import Settings
    from grochain.domain.provider_protocol import ProviderVerification
    from grochain.infrastructure.database.orm_models import Order, Transaction

logger = get_logger(__name__)


@dataclass
class SettlementResult:
    """What one application of a verification changed."""

    reference: str
    transaction_status: str
    transaction_completed: bool = False
    order_paid: bool = False
    commissions_created: int = 0

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "transaction_status": self.transaction_status,
            "transaction_completed": self.transaction_completed,
            "order_paid": self.order_paid,
            "commissions_created": self.commissions_created,
        }


class PaymentReconciler:
    """Moves a verified payment through Transaction -> Order -> side effects."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._transaction_repo = TransactionRepository(session)
        self._order_repo = OrderRepository(session)
        self._listing_repo = ListingRepository(session)
        self._harvest_repo = HarvestRepository(session)
        self._commission_service = CommissionService(session, settings)

    async def get_transaction(self, reference: str) -> Transaction:
        transaction = await self._transaction_repo.get_by_reference(reference)
        if transaction is None:
            raise TransactionNotFoundError(reference)
        return transaction

    async def settle_paid(
        self,
        reference: str,
        verification: ProviderVerification,
        source: str,
    ) -> SettlementResult:
        """Record a confirmed payment for ``reference``.

        Safe to call any number of times: the Transaction write happens once,
        and the Order step re-runs only while the order is still unpaid.
        """
        transaction = await self.get_transaction(reference)
        now = datetime.now(UTC)
        metadata = {
            **(transaction.metadata_json or {}),
            "auto_verified": source == "poller",
            "verification_source": source,
            "provider_verification": verification.to_dict(),
            "verified_at": now.isoformat(),
        }

        completed = await self._transaction_repo.mark_completed(reference, metadata, now)
        await self._session.refresh(transaction)
        result = SettlementResult(
            reference=reference,
            transaction_status=transaction.status,
            transaction_completed=completed,
        )
        if completed:
            logger.info("payment.transaction_completed", reference=reference, source=source)

        if transaction.status != TransactionStatus.COMPLETED.value:
            logger.warning(
                "payment.settlement_skipped",
                reference=reference,
                status=transaction.status,
            )
            return result

        await self._settle_order(transaction, result)
        return result

    async def repair_order(self, transaction: Transaction) -> SettlementResult:
        """Re-apply the Order step for an already completed transaction."""
        result = SettlementResult(reference=transaction.reference, transaction_status=transaction.status)
        if transaction.status == TransactionStatus.COMPLETED.value:
            await self._settle_order(transaction, result)
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _settle_order(self, transaction: Transaction, result: SettlementResult) -> None:
        if transaction.order_id is None:
            return
        if not await self._order_repo.mark_paid_if_unpaid(transaction.order_id, transaction.reference):
            order = await self._order_repo.get_by_id(transaction.order_id)
            if order is not None and order.status == OrderStatus.CANCELLED.value:
                logger.warning(
                    "payment.order_cancelled_before_settlement",
                    reference=transaction.reference,
                    order_id=str(order.id),
                )
            return

        result.order_paid = True
        order = await self._order_repo.get_by_id(transaction.order_id)
        logger.info(
            "payment.order_paid",
            reference=transaction.reference,
            order_id=str(transaction.order_id),
        )
        if order is not None:
            result.commissions_created = await self._apply_sale(order, transaction)

    async def _apply_sale(self, order: Order, transaction: Transaction) -> int:
        """Decrement listing stock and credit onboarding partners."""
        listings = await self._listing_repo.get_many([item.listing_id for item in order.items])
        partner_sales: dict[str, Decimal] = defaultdict(Decimal)

        for item in order.items:
            listing = listings.get(item.listing_id)
            if listing is None:
                continue
            listing.quantity = max(listing.quantity - item.quantity, Decimal("0"))
            if listing.quantity == 0 and listing.status == ListingStatus.ACTIVE.value:
                listing.status = ListingStatus.OUT_OF_STOCK.value

            harvest = await self._harvest_repo.get_by_id(listing.harvest_id)
            if harvest is not None and harvest.partner_id:
                partner_sales[harvest.partner_id] += item.line_total
        await self._session.flush()

        created = 0
        for partner_id, sale_amount in partner_sales.items():
            commission = await self._commission_service.record_for_transaction(
                partner_id=partner_id,
                transaction_id=transaction.reference,
                amount=sale_amount.quantize(Decimal("0.01")),
                currency=transaction.currency,
                transaction_type=TransactionType.MARKETPLACE_SALE,
                description=f"Marketplace sale, order {order.id}",
            )
            if commission is not None:
                created += 1
        return created
