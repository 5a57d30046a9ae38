"""Database infrastructure — engine, ORM models, and repositories."""

from grochain.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from grochain.infrastructure.database.orm_models import (
    Base,
    Commission,
    CommissionTier,
    Harvest,
    MarketplaceListing,
    Notification,
    Order,
    OrderItem,
    Transaction,
)
from grochain.infrastructure.database.repositories import (
    CommissionRepository,
    HarvestRepository,
    ListingRepository,
    NotificationRepository,
    OrderRepository,
    TierRepository,
    TransactionRepository,
)

__all__ = [
    "Base",
    "Commission",
    "CommissionRepository",
    "CommissionTier",
    "Harvest",
    "HarvestRepository",
    "ListingRepository",
    "MarketplaceListing",
    "Notification",
    "NotificationRepository",
    "Order",
    "OrderItem",
    "OrderRepository",
    "TierRepository",
    "Transaction",
    "TransactionRepository",
    "close_db",
    "get_async_session",
    "get_session_factory",
    "init_db",
]
