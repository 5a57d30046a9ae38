"""Domain enumerations for the GroChain reconciliation service.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class HarvestStatus(enum.StrEnum):
    """Approval states of a harvest batch.

    Transitions are guarded by HarvestStateMachine (domain/state_machine.py).
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class QualityGrade(enum.StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class HarvestUnit(enum.StrEnum):
    KG = "kg"
    TONS = "tons"
    PIECES = "pieces"
    BUNDLES = "bundles"
    BAGS = "bags"
    CRATES = "crates"


class ListingStatus(enum.StrEnum):
    ACTIVE = "active"
    OUT_OF_STOCK = "out_of_stock"
    REMOVED = "removed"


class OrderStatus(enum.StrEnum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(enum.StrEnum):
    """Payment state carried on an order, separate from its fulfilment status."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class TransactionStatus(enum.StrEnum):
    """Ledger state of a single payment attempt.

    A transaction reaches COMPLETED at most once; the write is a conditional
    update keyed on the provider reference.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CommissionStatus(enum.StrEnum):
    """Lifecycle states of a partner commission.

    See CommissionStateMachine for the transition table.
    """

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class DisputeStatus(enum.StrEnum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TransactionType(enum.StrEnum):
    """What kind of transaction a commission was earned on."""

    MARKETPLACE_SALE = "marketplace_sale"
    REFERRAL = "referral"
    SUBSCRIPTION = "subscription"
    SERVICE_FEE = "service_fee"
    OTHER = "other"


class PaymentMethod(enum.StrEnum):
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CRYPTO = "crypto"
    CHECK = "check"


class UserRole(enum.StrEnum):
    """Roles asserted by the upstream gateway in the X-User-Role header."""

    FARMER = "farmer"
    BUYER = "buyer"
    PARTNER = "partner"
    ADMIN = "admin"


class NotificationCategory(enum.StrEnum):
    HARVEST = "harvest"
    PAYMENT = "payment"
    COMMISSION = "commission"


# Roles allowed to move a harvest out of the pending state.
APPROVER_ROLES = frozenset({UserRole.PARTNER, UserRole.ADMIN})
