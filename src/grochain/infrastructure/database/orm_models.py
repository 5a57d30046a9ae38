"""SQLAlchemy 2.0 ORM models for GroChain.

Tables:
    1. harvests              — Harvest batches submitted by farmers.
    2. marketplace_listings  — At most one listing per approved harvest.
    3. orders / order_items  — Buyer checkouts.
    4. transactions          — One row per provider payment reference.
    5. commissions           — Partner commissions earned on completed transactions.
    6. commission_tiers      — Rate table used by the commission calculator.
    7. notifications         — Append-only farmer notifications.

Design decisions:
    - UUIDs as primary keys.
    - Numeric for money (no floating point rounding errors).
    - Portable Uuid/JSON types so the same models run on PostgreSQL and on
      SQLite in tests; JSON becomes JSONB on PostgreSQL.
    - CHECK constraints on every status column.
    - Uniqueness enforced in the database: transactions.reference,
      marketplace_listings.harvest_id, commissions(transaction_id, partner_id).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# ---------------------------------------------------------------------------
# 1. harvests
# ---------------------------------------------------------------------------
class Harvest(TimestampMixin, Base):
    """A harvest batch awaiting (or past) the approval gate."""

    __tablename__ = "harvests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        default=lambda: f"HB-{uuid.uuid4().hex[:12].upper()}",
    )

    farmer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    partner_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Onboarding partner of the farmer; commission beneficiary",
    )

    crop_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default="kg")
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quality: Mapped[str | None] = mapped_column(String(16), nullable=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        comment="Guarded by HarvestStateMachine",
    )
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    listing: Mapped[MarketplaceListing | None] = relationship(
        "MarketplaceListing",
        back_populates="harvest",
        uselist=False,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_harvest_valid_status",
        ),
        CheckConstraint(
            "unit IN ('kg', 'tons', 'pieces', 'bundles', 'bags', 'crates')",
            name="ck_harvest_valid_unit",
        ),
        CheckConstraint(
            "quality IS NULL OR quality IN ('excellent', 'good', 'fair', 'poor')",
            name="ck_harvest_valid_quality",
        ),
        CheckConstraint("quantity > 0", name="ck_harvest_positive_quantity"),
        Index("idx_harvest_status_created", "status", "created_at"),
        Index("idx_harvest_farmer", "farmer_id"),
        Index("idx_harvest_partner", "partner_id"),
    )

    def __repr__(self) -> str:
        return f"<Harvest id={self.id} crop={self.crop_type} status={self.status}>"


# ---------------------------------------------------------------------------
# 2. marketplace_listings
# ---------------------------------------------------------------------------
class MarketplaceListing(TimestampMixin, Base):
    """A sellable listing derived from exactly one approved harvest."""

    __tablename__ = "marketplace_listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    harvest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("harvests.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    farmer_id: Mapped[str] = mapped_column(String(64), nullable=False)

    crop_name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quality: Mapped[str | None] = mapped_column(String(16), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    harvest: Mapped[Harvest] = relationship("Harvest", back_populates="listing")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'out_of_stock', 'removed')",
            name="ck_listing_valid_status",
        ),
        CheckConstraint("price > 0", name="ck_listing_positive_price"),
        CheckConstraint("quantity >= 0", name="ck_listing_non_negative_quantity"),
        Index("idx_listing_farmer", "farmer_id"),
        Index("idx_listing_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<MarketplaceListing id={self.id} harvest={self.harvest_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. orders / order_items
# ---------------------------------------------------------------------------
class Order(TimestampMixin, Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipping_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list[OrderItem]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'processing', 'shipped', 'delivered', 'cancelled')",
            name="ck_order_valid_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed')",
            name="ck_order_valid_payment_status",
        ),
        CheckConstraint("total > 0", name="ck_order_positive_total"),
        Index("idx_order_buyer", "buyer_id"),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} total={self.total} status={self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_listings.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    order: Mapped[Order] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_positive_quantity"),
        Index("idx_order_item_order", "order_id"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


# ---------------------------------------------------------------------------
# 4. transactions
# ---------------------------------------------------------------------------
class Transaction(TimestampMixin, Base):
    """A payment attempt identified by its provider reference."""

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reference: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="paystack")
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Provider verification payload and audit flags",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_transaction_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_transaction_positive_amount"),
        Index("idx_transaction_status_created", "status", "created_at"),
        Index("idx_transaction_order", "order_id"),
    )

    def __repr__(self) -> str:
        return f"<Transaction reference={self.reference} status={self.status}>"


# ---------------------------------------------------------------------------
# 5. commissions
# ---------------------------------------------------------------------------
class Commission(TimestampMixin, Base):
    """Commission owed to a partner for one transaction."""

    __tablename__ = "commissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="marketplace_sale"
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    bonus_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        comment="Guarded by CommissionStateMachine",
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Approval / payout audit ---
    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cancelled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Dispute audit ---
    dispute_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disputed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dispute_resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("transaction_id", "partner_id", name="uq_commission_transaction_partner"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'cancelled', 'disputed')",
            name="ck_commission_valid_status",
        ),
        CheckConstraint(
            "transaction_type IN ('marketplace_sale', 'referral', 'subscription', "
            "'service_fee', 'other')",
            name="ck_commission_valid_type",
        ),
        CheckConstraint("amount > 0", name="ck_commission_positive_amount"),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_commission_rate_bounds",
        ),
        CheckConstraint(
            "bonus_rate >= 0 AND bonus_rate <= 100",
            name="ck_commission_bonus_bounds",
        ),
        CheckConstraint("commission_amount >= 0", name="ck_commission_non_negative"),
        Index("idx_commission_partner_status", "partner_id", "status"),
        Index("idx_commission_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Commission id={self.id} partner={self.partner_id} "
            f"amount={self.commission_amount} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 6. commission_tiers
# ---------------------------------------------------------------------------
class CommissionTier(TimestampMixin, Base):
    __tablename__ = "commission_tiers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_transactions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    bonus_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("min_transactions >= 0", name="ck_tier_min_transactions"),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_tier_rate_bounds",
        ),
        CheckConstraint("bonus_rate >= 0 AND bonus_rate <= 100", name="ck_tier_bonus_bounds"),
    )


# ---------------------------------------------------------------------------
# 7. notifications (append-only)
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (Index("idx_notification_user", "user_id", "created_at"),)
