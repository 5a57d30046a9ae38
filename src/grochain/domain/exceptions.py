"""Domain exceptions for the GroChain reconciliation service.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware:

    ValidationError          -> 400
    AuthenticationError      -> 401
    AuthorizationError       -> 403
    NotFoundError            -> 404
    ConflictError            -> 409
"""


class GroChainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "GROCHAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Caller errors ---


class ValidationError(GroChainError):
    """Raised when input fails a business-level validation rule."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class InvalidPriceError(ValidationError):
    """Raised when a listing price is not a positive number."""

    def __init__(self, price: object) -> None:
        super().__init__(
            message=f"Price must be a positive number, got {price!r}",
            code="INVALID_PRICE",
        )
        self.price = price


class AuthenticationError(GroChainError):
    """Raised when the request carries no usable caller identity."""

    def __init__(self, message: str = "Caller identity is missing") -> None:
        super().__init__(message=message, code="UNAUTHENTICATED")


class AuthorizationError(GroChainError):
    """Raised when the caller lacks the capability for an operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="FORBIDDEN")


# --- Lookup errors ---


class NotFoundError(GroChainError):
    """Base for missing records."""

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code)


class HarvestNotFoundError(NotFoundError):
    def __init__(self, harvest_id: str) -> None:
        super().__init__(message=f"Harvest not found: {harvest_id}", code="HARVEST_NOT_FOUND")
        self.harvest_id = harvest_id


class HarvestNotPendingError(NotFoundError):
    """Raised when approve/reject targets a harvest that already left ``pending``.

    Reported as not-found: the harvest is not in any approval queue.
    """

    def __init__(self, harvest_id: str, current_status: str) -> None:
        super().__init__(
            message=f"Harvest {harvest_id} is not pending approval (status: {current_status})",
            code="HARVEST_NOT_PENDING",
        )
        self.harvest_id = harvest_id
        self.current_status = current_status


class ListingNotFoundError(NotFoundError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(message=f"Listing not found: {listing_id}", code="LISTING_NOT_FOUND")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str) -> None:
        super().__init__(message=f"Order not found: {order_id}", code="ORDER_NOT_FOUND")


class TransactionNotFoundError(NotFoundError):
    def __init__(self, reference: str) -> None:
        super().__init__(
            message=f"Transaction not found: {reference}",
            code="TRANSACTION_NOT_FOUND",
        )
        self.reference = reference


class CommissionNotFoundError(NotFoundError):
    def __init__(self, commission_id: str) -> None:
        super().__init__(
            message=f"Commission not found: {commission_id}",
            code="COMMISSION_NOT_FOUND",
        )


# --- State conflicts ---


class ConflictError(GroChainError):
    """Base for requests that collide with the current state of a record."""

    def __init__(self, message: str, code: str = "CONFLICT") -> None:
        super().__init__(message=message, code=code)


class InvalidStateTransitionError(ConflictError):
    """Raised when an attempted state transition is not allowed.

    Example: commission pending -> paid (must be approved first).
    """

    def __init__(self, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_state = attempted


class HarvestNotApprovedError(ConflictError):
    def __init__(self, harvest_id: str, current_status: str) -> None:
        super().__init__(
            message=f"Only approved harvests can be listed (harvest {harvest_id} is {current_status})",
            code="HARVEST_NOT_APPROVED",
        )


class ListingAlreadyExistsError(ConflictError):
    def __init__(self, harvest_id: str) -> None:
        super().__init__(
            message=f"A listing already exists for harvest {harvest_id}",
            code="LISTING_ALREADY_EXISTS",
        )
        self.harvest_id = harvest_id


class OrderAlreadyPaidError(ConflictError):
    def __init__(self, order_id: str) -> None:
        super().__init__(message=f"Order already paid: {order_id}", code="ORDER_ALREADY_PAID")


class OrderNotPayableError(ConflictError):
    """Raised when an order has left the pending state without being paid."""

    def __init__(self, order_id: str, current_status: str) -> None:
        super().__init__(
            message=f"Order {order_id} cannot take a payment (status {current_status})",
            code="ORDER_NOT_PAYABLE",
        )


class InsufficientStockError(ConflictError):
    def __init__(self, listing_id: str, requested: str, available: str) -> None:
        super().__init__(
            message=(
                f"Listing {listing_id} has {available} available, "
                f"{requested} requested"
            ),
            code="INSUFFICIENT_STOCK",
        )


class CommissionAlreadyExistsError(ConflictError):
    def __init__(self, transaction_id: str, partner_id: str) -> None:
        super().__init__(
            message=(
                f"Commission already recorded for transaction {transaction_id} "
                f"and partner {partner_id}"
            ),
            code="COMMISSION_ALREADY_EXISTS",
        )


class CommissionNotEditableError(ConflictError):
    def __init__(self, commission_id: str, current_status: str) -> None:
        super().__init__(
            message=(
                f"Commission {commission_id} can only be edited while pending "
                f"(is {current_status})"
            ),
            code="COMMISSION_NOT_EDITABLE",
        )


class TierAlreadyExistsError(ConflictError):
    def __init__(self, name: str) -> None:
        super().__init__(message=f"Commission tier already exists: {name}", code="TIER_ALREADY_EXISTS")


class DuplicateOperationError(ConflictError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )


# --- Provider errors ---


class PaymentProviderError(GroChainError):
    """Raised when the payment provider rejects or fails an initialization call.

    Verification calls never raise this; they return an unsuccessful
    ProviderVerification instead.
    """

    def __init__(self, message: str, reference: str | None = None) -> None:
        super().__init__(message=message, code="PAYMENT_PROVIDER_ERROR")
        self.reference = reference


class WebhookSignatureError(GroChainError):
    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message=message, code="INVALID_SIGNATURE")
