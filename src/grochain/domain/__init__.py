"""Domain layer — pure business logic with zero framework dependencies."""

from grochain.domain.commission_math import (
    CommissionBreakdown,
    TierRule,
    calculate_commission,
    compute_commission_amount,
)
from grochain.domain.enums import (
    CommissionStatus,
    HarvestStatus,
    ListingStatus,
    OrderStatus,
    PaymentStatus,
    TransactionStatus,
    UserRole,
)
from grochain.domain.exceptions import (
    GroChainError,
    InvalidStateTransitionError,
    NotFoundError,
)
from grochain.domain.provider_protocol import (
    PaymentProvider,
    ProviderVerification,
)
from grochain.domain.state_machine import (
    CommissionStateMachine,
    HarvestStateMachine,
    validate_transition,
)

__all__ = [
    "CommissionBreakdown",
    "CommissionStateMachine",
    "CommissionStatus",
    "GroChainError",
    "HarvestStateMachine",
    "HarvestStatus",
    "InvalidStateTransitionError",
    "ListingStatus",
    "NotFoundError",
    "OrderStatus",
    "PaymentProvider",
    "PaymentStatus",
    "ProviderVerification",
    "TierRule",
    "TransactionStatus",
    "UserRole",
    "calculate_commission",
    "compute_commission_amount",
    "validate_transition",
]
