"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

The conditional updates (``mark_completed``, ``mark_paid_if_unpaid``) are the
idempotency guards of payment reconciliation: they report through their
return value whether THIS call performed the transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update

from grochain.domain.enums import (
    CommissionStatus,
    HarvestStatus,
    OrderStatus,
    PaymentStatus,
    TransactionStatus,
)
from grochain.infrastructure.database.orm_models import (
    Commission,
    CommissionTier,
    Harvest,
    MarketplaceListing,
    Notification,
    Order,
    Transaction,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class Page:
    """A slice of a larger result set."""

    items: list
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


@dataclass
class CommissionFilter:
    partner_id: str | None = None
    status: str | None = None
    transaction_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


class HarvestRepository:
    """Data access for harvest batches."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, harvest: Harvest) -> Harvest:
        self._session.add(harvest)
        await self._session.flush()
        return harvest

    async def get_by_id(self, harvest_id: uuid.UUID) -> Harvest | None:
        result = await self._session.execute(select(Harvest).where(Harvest.id == harvest_id))
        return result.scalar_one_or_none()

    async def update_status(self, harvest: Harvest, new_status: HarvestStatus) -> Harvest:
        """Update the status of a harvest (call AFTER state machine validation)."""
        harvest.status = new_status.value
        harvest.updated_at = datetime.now(UTC)
        await self._session.flush()
        return harvest

    @staticmethod
    def _approver_scope(approver_id: str | None):
        # Partners see their own farmers' harvests plus unassigned ones.
        if approver_id is None:
            return None
        return or_(Harvest.partner_id == approver_id, Harvest.partner_id.is_(None))

    async def list_pending(
        self,
        approver_id: str | None = None,
        crop_type: str | None = None,
        location: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        """Pending harvests, oldest first. ``approver_id=None`` means unscoped (admin)."""
        conditions = [Harvest.status == HarvestStatus.PENDING.value]
        scope = self._approver_scope(approver_id)
        if scope is not None:
            conditions.append(scope)
        if crop_type:
            conditions.append(func.lower(Harvest.crop_type).contains(crop_type.lower()))
        if location:
            conditions.append(func.lower(Harvest.location).contains(location.lower()))

        total = await self._session.scalar(
            select(func.count()).select_from(Harvest).where(*conditions)
        )
        result = await self._session.execute(
            select(Harvest)
            .where(*conditions)
            .order_by(Harvest.created_at.asc(), Harvest.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)

    async def get_pending_by_ids(
        self,
        harvest_ids: list[uuid.UUID],
        approver_id: str | None = None,
    ) -> list[Harvest]:
        conditions = [
            Harvest.id.in_(harvest_ids),
            Harvest.status == HarvestStatus.PENDING.value,
        ]
        scope = self._approver_scope(approver_id)
        if scope is not None:
            conditions.append(scope)
        result = await self._session.execute(
            select(Harvest).where(*conditions).order_by(Harvest.created_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    def _decision_conditions(
        verifier_id: str | None,
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> list:
        # Decisions are attributed to the approver and dated by verified_at.
        conditions = [
            Harvest.status.in_((HarvestStatus.APPROVED.value, HarvestStatus.REJECTED.value))
        ]
        if verifier_id:
            conditions.append(Harvest.verified_by == verifier_id)
        if start_date:
            conditions.append(Harvest.verified_at >= start_date)
        if end_date:
            conditions.append(Harvest.verified_at <= end_date)
        return conditions

    async def count_by_status(
        self,
        verifier_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, int]:
        """Decisions per status made by ``verifier_id``, plus the pending queue it can see."""
        conditions = self._decision_conditions(verifier_id, start_date, end_date)
        result = await self._session.execute(
            select(Harvest.status, func.count()).where(*conditions).group_by(Harvest.status)
        )
        counts = {status: count for status, count in result.all()}

        pending = [Harvest.status == HarvestStatus.PENDING.value]
        scope = self._approver_scope(verifier_id)
        if scope is not None:
            pending.append(scope)
        counts[HarvestStatus.PENDING.value] = (
            await self._session.scalar(select(func.count()).select_from(Harvest).where(*pending))
        ) or 0
        return counts

    async def approved_distribution(
        self,
        column_name: str,
        verifier_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, int]:
        """Count approved harvests grouped by ``quality`` or ``crop_type``."""
        column = getattr(Harvest, column_name)
        conditions = self._decision_conditions(verifier_id, start_date, end_date)
        conditions.append(Harvest.status == HarvestStatus.APPROVED.value)
        result = await self._session.execute(
            select(column, func.count()).where(*conditions).group_by(column)
        )
        return {str(key): count for key, count in result.all() if key is not None}


class ListingRepository:
    """Data access for marketplace listings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, listing: MarketplaceListing) -> MarketplaceListing:
        """Insert a listing. The unique index on harvest_id may raise IntegrityError."""
        self._session.add(listing)
        await self._session.flush()
        return listing

    async def get_by_id(self, listing_id: uuid.UUID) -> MarketplaceListing | None:
        result = await self._session.execute(
            select(MarketplaceListing).where(MarketplaceListing.id == listing_id)
        )
        return result.scalar_one_or_none()

    async def get_by_harvest_id(self, harvest_id: uuid.UUID) -> MarketplaceListing | None:
        result = await self._session.execute(
            select(MarketplaceListing).where(MarketplaceListing.harvest_id == harvest_id)
        )
        return result.scalar_one_or_none()

    async def get_many(self, listing_ids: list[uuid.UUID]) -> dict[uuid.UUID, MarketplaceListing]:
        if not listing_ids:
            return {}
        result = await self._session.execute(
            select(MarketplaceListing).where(MarketplaceListing.id.in_(listing_ids))
        )
        return {listing.id: listing for listing in result.scalars().all()}

    async def update_status(self, listing: MarketplaceListing, new_status: str) -> MarketplaceListing:
        listing.status = new_status
        listing.updated_at = datetime.now(UTC)
        await self._session.flush()
        return listing


class OrderRepository:
    """Data access for orders and their items."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, order: Order) -> Order:
        self._session.add(order)
        await self._session.flush()
        return order

    async def get_by_id(self, order_id: uuid.UUID) -> Order | None:
        result = await self._session.execute(select(Order).where(Order.id == order_id))
        return result.scalar_one_or_none()

    async def mark_paid_if_unpaid(self, order_id: uuid.UUID, reference: str) -> bool:
        """Move a pending, unpaid order to paid.

        Orders that were cancelled or have moved on to fulfilment are left
        alone. Returns True only for the call that performed the transition.
        """
        result = await self._session.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING.value,
                Order.payment_status != PaymentStatus.PAID.value,
            )
            .values(
                {
                    Order.status: OrderStatus.PAID.value,
                    Order.payment_status: PaymentStatus.PAID.value,
                    Order.payment_reference: reference,
                    Order.updated_at: datetime.now(UTC),
                }
            )
        )
        return result.rowcount == 1


class TransactionRepository:
    """Data access for provider payment transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, transaction: Transaction) -> Transaction:
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def get_by_reference(self, reference: str) -> Transaction | None:
        result = await self._session.execute(
            select(Transaction).where(Transaction.reference == reference)
        )
        return result.scalar_one_or_none()

    async def list_pending_since(self, cutoff: datetime, limit: int) -> list[Transaction]:
        """Pending transactions created at or after ``cutoff``, oldest first."""
        result = await self._session.execute(
            select(Transaction)
            .where(
                Transaction.status == TransactionStatus.PENDING.value,
                Transaction.created_at >= cutoff,
            )
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_completed(
        self,
        reference: str,
        metadata: dict,
        processed_at: datetime | None = None,
    ) -> bool:
        """Complete a pending transaction exactly once.

        The WHERE clause on status makes a repeated call a no-op; the return
        value tells the caller whether this call did the write.
        """
        now = processed_at or datetime.now(UTC)
        result = await self._session.execute(
            update(Transaction)
            .where(
                Transaction.reference == reference,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(
                {
                    Transaction.status: TransactionStatus.COMPLETED.value,
                    Transaction.processed_at: now,
                    Transaction.metadata_json: metadata,
                    Transaction.updated_at: now,
                }
            )
        )
        return result.rowcount == 1


class CommissionRepository:
    """Data access for partner commissions."""

    SORTABLE = frozenset({"created_at", "amount", "commission_amount", "due_date", "status"})

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, commission: Commission) -> Commission:
        self._session.add(commission)
        await self._session.flush()
        return commission

    async def get_by_id(self, commission_id: uuid.UUID) -> Commission | None:
        result = await self._session.execute(
            select(Commission).where(Commission.id == commission_id)
        )
        return result.scalar_one_or_none()

    async def get_by_transaction_and_partner(
        self,
        transaction_id: str,
        partner_id: str,
    ) -> Commission | None:
        result = await self._session.execute(
            select(Commission).where(
                Commission.transaction_id == transaction_id,
                Commission.partner_id == partner_id,
            )
        )
        return result.scalar_one_or_none()

    async def partner_history(self, partner_id: str) -> tuple[int, Decimal]:
        """Return (count, volume) of the partner's non-cancelled commissions."""
        result = await self._session.execute(
            select(func.count(), func.coalesce(func.sum(Commission.amount), 0)).where(
                Commission.partner_id == partner_id,
                Commission.status != CommissionStatus.CANCELLED.value,
            )
        )
        count, volume = result.one()
        return int(count), Decimal(str(volume))

    async def search(self, filters: CommissionFilter, page: int = 1, limit: int = 20) -> Page:
        conditions = []
        if filters.partner_id:
            conditions.append(Commission.partner_id == filters.partner_id)
        if filters.status:
            conditions.append(Commission.status == filters.status)
        if filters.transaction_type:
            conditions.append(Commission.transaction_type == filters.transaction_type)
        if filters.start_date:
            conditions.append(Commission.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(Commission.created_at <= filters.end_date)
        if filters.min_amount is not None:
            conditions.append(Commission.commission_amount >= filters.min_amount)
        if filters.max_amount is not None:
            conditions.append(Commission.commission_amount <= filters.max_amount)

        sort_by = filters.sort_by if filters.sort_by in self.SORTABLE else "created_at"
        sort_column = getattr(Commission, sort_by)
        ordering = sort_column.asc() if filters.sort_order == "asc" else sort_column.desc()

        total = await self._session.scalar(
            select(func.count()).select_from(Commission).where(*conditions)
        )
        result = await self._session.execute(
            select(Commission)
            .where(*conditions)
            .order_by(ordering, Commission.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)

    async def summary_by_status(self, partner_id: str) -> dict[str, tuple[int, Decimal]]:
        """Return ``{status: (count, commission_total)}`` for one partner."""
        result = await self._session.execute(
            select(
                Commission.status,
                func.count(),
                func.coalesce(func.sum(Commission.commission_amount), 0),
            )
            .where(Commission.partner_id == partner_id)
            .group_by(Commission.status)
        )
        return {
            status: (int(count), Decimal(str(total)).quantize(Decimal("0.01")))
            for status, count, total in result.all()
        }


class TierRepository:
    """Data access for the commission tier table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, tier: CommissionTier) -> CommissionTier:
        self._session.add(tier)
        await self._session.flush()
        return tier

    async def get_by_name(self, name: str) -> CommissionTier | None:
        result = await self._session.execute(
            select(CommissionTier).where(CommissionTier.name == name)
        )
        return result.scalar_one_or_none()

    async def list_tiers(self, active_only: bool = False) -> list[CommissionTier]:
        stmt = select(CommissionTier).order_by(CommissionTier.min_transactions.asc())
        if active_only:
            stmt = stmt.where(CommissionTier.is_active.is_(True))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class NotificationRepository:
    """Append-only store of user notifications."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        user_id: str,
        title: str,
        message: str,
        category: str,
        data: dict | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            category=category,
            data=data,
        )
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def list_for_user(self, user_id: str) -> list[Notification]:
        result = await self._session.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.asc())
        )
        return list(result.scalars().all())
