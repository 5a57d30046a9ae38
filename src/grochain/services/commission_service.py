"""Commission Calculator and commission lifecycle.

calculate() is read-only: it loads the tier table and the partner's history
and delegates the arithmetic to domain/commission_math.py. Everything else
walks a commission through CommissionStateMachine:

    pending -> approved -> paid
    pending|approved -> cancelled
    pending|approved -> disputed -> pending (resolved) | cancelled (closed)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from statemachine.exceptions import TransitionNotAllowed

from grochain.config import get_settings
from grochain.domain.commission_math import (
    CommissionBreakdown,
    TierRule,
    calculate_commission,
    compute_commission_amount,
)
from grochain.domain.enums import (
    CommissionStatus,
    DisputeStatus,
    PaymentMethod,
    TransactionType,
    UserRole,
)
from grochain.domain.exceptions import (
    AuthorizationError,
    CommissionAlreadyExistsError,
    CommissionNotEditableError,
    CommissionNotFoundError,
    InvalidStateTransitionError,
    TierAlreadyExistsError,
    ValidationError,
)
from grochain.domain.state_machine import CommissionStateMachine, validate_transition
from grochain.infrastructure.database.orm_models import Commission, CommissionTier
from grochain.infrastructure.database.repositories import (
    CommissionFilter,
    CommissionRepository,
    Page,
    TierRepository,
)
from grochain.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from grochain.config import Settings
    from grochain.domain.principal import Principal

logger = get_logger(__name__)

DISPUTE_REASON_MIN = 10
DISPUTE_REASON_MAX = 500


def tier_rule_from_row(tier: CommissionTier) -> TierRule:
    return TierRule(
        name=tier.name,
        min_transactions=tier.min_transactions,
        max_transactions=tier.max_transactions,
        min_amount=Decimal(str(tier.min_amount)),
        max_amount=Decimal(str(tier.max_amount)) if tier.max_amount is not None else None,
        commission_rate=Decimal(str(tier.commission_rate)),
        bonus_rate=Decimal(str(tier.bonus_rate)),
        is_active=tier.is_active,
    )


class CommissionService:
    """Partner commission calculation, ledger and approval workflow."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._commission_repo = CommissionRepository(session)
        self._tier_repo = TierRepository(session)

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    async def calculate(
        self,
        partner_id: str,
        transaction_amount: Decimal,
        transaction_type: TransactionType = TransactionType.MARKETPLACE_SALE,
    ) -> CommissionBreakdown:
        """Commission owed to ``partner_id`` on a transaction. No writes."""
        if transaction_amount <= 0:
            raise ValidationError("Transaction amount must be positive", code="INVALID_AMOUNT")

        tiers = [tier_rule_from_row(t) for t in await self._tier_repo.list_tiers(active_only=True)]
        count, volume = await self._commission_repo.partner_history(partner_id)
        breakdown = calculate_commission(
            transaction_amount=transaction_amount,
            tiers=tiers,
            transaction_count=count,
            cumulative_amount=volume,
            default_rate=self._settings.commission_default_rate,
        )
        logger.debug(
            "commission.calculated",
            partner_id=partner_id,
            transaction_type=TransactionType(transaction_type).value,
            tier=breakdown.tier_name,
            amount=str(breakdown.commission_amount),
        )
        return breakdown

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def record_for_transaction(
        self,
        partner_id: str,
        transaction_id: str,
        amount: Decimal,
        currency: str = "NGN",
        transaction_type: TransactionType = TransactionType.MARKETPLACE_SALE,
        description: str | None = None,
    ) -> Commission | None:
        """Create the commission earned by a completed transaction.

        Returns None when the partner already holds a commission for this
        transaction, so the payment path can call it repeatedly.
        """
        existing = await self._commission_repo.get_by_transaction_and_partner(
            transaction_id, partner_id
        )
        if existing is not None:
            logger.info(
                "commission.already_recorded",
                transaction_id=transaction_id,
                partner_id=partner_id,
            )
            return None

        breakdown = await self.calculate(partner_id, amount, transaction_type)
        commission = Commission(
            partner_id=partner_id,
            transaction_id=transaction_id,
            transaction_type=TransactionType(transaction_type).value,
            amount=amount,
            commission_rate=breakdown.commission_rate,
            bonus_rate=breakdown.bonus_rate,
            commission_amount=breakdown.commission_amount,
            currency=currency,
            status=CommissionStatus.PENDING.value,
            due_date=self._due_date(),
            description=description,
        )
        commission = await self._commission_repo.create(commission)
        logger.info(
            "commission.recorded",
            commission_id=str(commission.id),
            partner_id=partner_id,
            transaction_id=transaction_id,
            commission_amount=str(commission.commission_amount),
        )
        return commission

    async def create_commission(
        self,
        principal: Principal,
        partner_id: str,
        transaction_id: str,
        amount: Decimal,
        transaction_type: TransactionType = TransactionType.MARKETPLACE_SALE,
        commission_rate: Decimal | None = None,
        bonus_rate: Decimal = Decimal("0"),
        commission_amount: Decimal | None = None,
        currency: str = "NGN",
        due_date: datetime | None = None,
        description: str | None = None,
        notes: str | None = None,
    ) -> Commission:
        """Manually record a commission (admin).

        With no ``commission_rate`` the tier table decides the rates. A
        supplied ``commission_amount`` must agree with the rates.
        """
        principal.require_role(UserRole.ADMIN, action="create commissions")

        if commission_rate is None:
            breakdown = await self.calculate(partner_id, amount, transaction_type)
            commission_rate, bonus_rate = breakdown.commission_rate, breakdown.bonus_rate
        computed = self._compute(amount, commission_rate, bonus_rate)
        if commission_amount is not None and commission_amount != computed:
            raise ValidationError(
                f"commission_amount {commission_amount} does not match "
                f"amount x rate ({computed})",
                code="COMMISSION_AMOUNT_MISMATCH",
            )

        existing = await self._commission_repo.get_by_transaction_and_partner(
            transaction_id, partner_id
        )
        if existing is not None:
            raise CommissionAlreadyExistsError(transaction_id, partner_id)

        commission = Commission(
            partner_id=partner_id,
            transaction_id=transaction_id,
            transaction_type=TransactionType(transaction_type).value,
            amount=amount,
            commission_rate=commission_rate,
            bonus_rate=bonus_rate,
            commission_amount=computed,
            currency=currency,
            status=CommissionStatus.PENDING.value,
            due_date=due_date or self._due_date(),
            description=description,
            notes=notes,
        )
        try:
            commission = await self._commission_repo.create(commission)
        except IntegrityError as err:
            await self._session.rollback()
            raise CommissionAlreadyExistsError(transaction_id, partner_id) from err

        logger.info(
            "commission.created",
            commission_id=str(commission.id),
            partner_id=partner_id,
            by=principal.user_id,
        )
        return commission

    async def update_commission(
        self,
        principal: Principal,
        commission_id: uuid.UUID,
        amount: Decimal | None = None,
        commission_rate: Decimal | None = None,
        bonus_rate: Decimal | None = None,
        due_date: datetime | None = None,
        description: str | None = None,
        notes: str | None = None,
    ) -> Commission:
        """Edit a pending commission and recompute its amount."""
        principal.require_role(UserRole.ADMIN, action="update commissions")
        commission = await self._get_or_raise(commission_id)
        if commission.status != CommissionStatus.PENDING.value:
            raise CommissionNotEditableError(str(commission_id), commission.status)

        if amount is not None:
            commission.amount = amount
        if commission_rate is not None:
            commission.commission_rate = commission_rate
        if bonus_rate is not None:
            commission.bonus_rate = bonus_rate
        if due_date is not None:
            commission.due_date = due_date
        if description is not None:
            commission.description = description
        if notes is not None:
            commission.notes = notes

        commission.commission_amount = self._compute(
            Decimal(str(commission.amount)),
            Decimal(str(commission.commission_rate)),
            Decimal(str(commission.bonus_rate)),
        )
        await self._session.flush()
        logger.info("commission.updated", commission_id=str(commission_id), by=principal.user_id)
        return commission

    # ------------------------------------------------------------------
    # Approval / payout
    # ------------------------------------------------------------------

    async def approve(
        self,
        principal: Principal,
        commission_id: uuid.UUID,
        notes: str | None = None,
    ) -> Commission:
        principal.require_role(UserRole.ADMIN, action="approve commissions")
        commission = await self._get_or_raise(commission_id)
        self._fire_transition(commission, "approve")

        commission.status = CommissionStatus.APPROVED.value
        commission.approved_by = principal.user_id
        commission.approved_at = datetime.now(UTC)
        if notes:
            commission.notes = notes
        await self._session.flush()
        logger.info("commission.approved", commission_id=str(commission_id), by=principal.user_id)
        return commission

    async def process_payment(
        self,
        principal: Principal,
        commission_id: uuid.UUID,
        payment_method: PaymentMethod,
        payment_transaction_id: str | None = None,
        notes: str | None = None,
    ) -> Commission:
        principal.require_role(UserRole.ADMIN, action="pay commissions")
        commission = await self._get_or_raise(commission_id)
        self._fire_transition(commission, "process_payment")

        commission.status = CommissionStatus.PAID.value
        commission.paid_by = principal.user_id
        commission.paid_at = datetime.now(UTC)
        commission.payment_method = PaymentMethod(payment_method).value
        commission.payment_transaction_id = payment_transaction_id
        if notes:
            commission.notes = notes
        await self._session.flush()
        logger.info(
            "commission.paid",
            commission_id=str(commission_id),
            method=commission.payment_method,
            by=principal.user_id,
        )
        return commission

    async def cancel(
        self,
        principal: Principal,
        commission_id: uuid.UUID,
        reason: str | None = None,
    ) -> Commission:
        principal.require_role(UserRole.ADMIN, action="cancel commissions")
        commission = await self._get_or_raise(commission_id)
        self._fire_transition(commission, "cancel")

        commission.status = CommissionStatus.CANCELLED.value
        commission.cancelled_reason = reason
        await self._session.flush()
        logger.info("commission.cancelled", commission_id=str(commission_id), by=principal.user_id)
        return commission

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def raise_dispute(
        self,
        principal: Principal,
        commission_id: uuid.UUID,
        reason: str,
    ) -> Commission:
        """Freeze a commission pending investigation.

        Admins may dispute any commission, partners only their own.
        """
        principal.require_role(UserRole.ADMIN, UserRole.PARTNER, action="dispute commissions")
        reason = (reason or "").strip()
        if not DISPUTE_REASON_MIN <= len(reason) <= DISPUTE_REASON_MAX:
            raise ValidationError(
                f"Dispute reason must be {DISPUTE_REASON_MIN}-{DISPUTE_REASON_MAX} characters",
                code="INVALID_DISPUTE_REASON",
            )
        commission = await self._get_or_raise(commission_id)
        self._require_visible(principal, commission)
        self._fire_transition(commission, "raise_dispute")

        commission.status = CommissionStatus.DISPUTED.value
        commission.dispute_status = DisputeStatus.OPEN.value
        commission.dispute_reason = reason
        commission.disputed_by = principal.user_id
        commission.disputed_at = datetime.now(UTC)
        commission.dispute_resolution = None
        commission.dispute_resolved_at = None
        await self._session.flush()
        logger.info("commission.disputed", commission_id=str(commission_id), by=principal.user_id)
        return commission

    async def update_dispute(
        self,
        principal: Principal,
        commission_id: uuid.UUID,
        dispute_status: DisputeStatus,
        resolution: str | None = None,
    ) -> Commission:
        """Advance an open dispute.

        ``under_review`` keeps the commission disputed, ``resolved`` returns it
        to pending and ``closed`` cancels it.
        """
        principal.require_role(UserRole.ADMIN, action="resolve disputes")
        dispute_status = DisputeStatus(dispute_status)
        if dispute_status == DisputeStatus.OPEN:
            raise ValidationError("A dispute cannot be reopened", code="INVALID_DISPUTE_STATUS")

        commission = await self._get_or_raise(commission_id)
        if commission.status != CommissionStatus.DISPUTED.value:
            raise InvalidStateTransitionError(commission.status, f"dispute:{dispute_status.value}")

        if dispute_status == DisputeStatus.RESOLVED:
            self._fire_transition(commission, "resolve_dispute")
            commission.status = CommissionStatus.PENDING.value
        elif dispute_status == DisputeStatus.CLOSED:
            self._fire_transition(commission, "close_dispute")
            commission.status = CommissionStatus.CANCELLED.value

        commission.dispute_status = dispute_status.value
        if resolution:
            commission.dispute_resolution = resolution
        if dispute_status != DisputeStatus.UNDER_REVIEW:
            commission.dispute_resolved_at = datetime.now(UTC)
        await self._session.flush()
        logger.info(
            "commission.dispute_updated",
            commission_id=str(commission_id),
            dispute_status=dispute_status.value,
            status=commission.status,
        )
        return commission

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_commission(self, principal: Principal, commission_id: uuid.UUID) -> Commission:
        principal.require_role(UserRole.ADMIN, UserRole.PARTNER, action="view commissions")
        commission = await self._get_or_raise(commission_id)
        self._require_visible(principal, commission)
        return commission

    async def list_commissions(
        self,
        principal: Principal,
        filters: CommissionFilter,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        principal.require_role(UserRole.ADMIN, UserRole.PARTNER, action="view commissions")
        if filters.start_date and filters.end_date and filters.end_date <= filters.start_date:
            raise ValidationError("end_date must be after start_date", code="INVALID_DATE_RANGE")
        if not principal.is_admin:
            filters.partner_id = principal.user_id
        limit = min(limit, self._settings.api_max_page_size)
        return await self._commission_repo.search(filters, page=page, limit=limit)

    async def partner_summary(self, principal: Principal, partner_id: str) -> dict:
        """Commission counts and totals per status for one partner."""
        principal.require_role(UserRole.ADMIN, UserRole.PARTNER, action="view commissions")
        if not principal.is_admin and partner_id != principal.user_id:
            raise AuthorizationError("Partners can only view their own commission summary")

        by_status = await self._commission_repo.summary_by_status(partner_id)
        zero = Decimal("0.00")
        summary = {
            "partner_id": partner_id,
            "total_count": sum(count for count, _ in by_status.values()),
            "by_status": {},
        }
        for status in CommissionStatus:
            count, total = by_status.get(status.value, (0, zero))
            summary["by_status"][status.value] = {"count": count, "amount": total}
        summary["total_earned"] = sum(
            (
                summary["by_status"][s.value]["amount"]
                for s in (CommissionStatus.PENDING, CommissionStatus.APPROVED, CommissionStatus.PAID)
            ),
            zero,
        )
        summary["total_paid"] = summary["by_status"][CommissionStatus.PAID.value]["amount"]
        summary["outstanding"] = summary["total_earned"] - summary["total_paid"]
        return summary

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def create_tier(
        self,
        principal: Principal,
        name: str,
        commission_rate: Decimal,
        min_transactions: int = 0,
        max_transactions: int | None = None,
        min_amount: Decimal = Decimal("0"),
        max_amount: Decimal | None = None,
        bonus_rate: Decimal = Decimal("0"),
        description: str | None = None,
        is_active: bool = True,
    ) -> CommissionTier:
        principal.require_role(UserRole.ADMIN, action="manage commission tiers")
        if max_transactions is not None and max_transactions < min_transactions:
            raise ValidationError(
                "max_transactions must not be below min_transactions", code="INVALID_TIER_RANGE"
            )
        if max_amount is not None and max_amount < min_amount:
            raise ValidationError("max_amount must not be below min_amount", code="INVALID_TIER_RANGE")
        if await self._tier_repo.get_by_name(name) is not None:
            raise TierAlreadyExistsError(name)

        tier = await self._tier_repo.create(
            CommissionTier(
                name=name,
                description=description,
                min_transactions=min_transactions,
                max_transactions=max_transactions,
                min_amount=min_amount,
                max_amount=max_amount,
                commission_rate=commission_rate,
                bonus_rate=bonus_rate,
                is_active=is_active,
            )
        )
        logger.info("commission.tier_created", tier=name, rate=str(commission_rate))
        return tier

    async def list_tiers(self, active_only: bool = False) -> list[CommissionTier]:
        return await self._tier_repo.list_tiers(active_only=active_only)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _due_date(self) -> datetime:
        return datetime.now(UTC) + timedelta(days=self._settings.commission_due_days)

    @staticmethod
    def _compute(amount: Decimal, rate: Decimal, bonus: Decimal) -> Decimal:
        try:
            return compute_commission_amount(amount, rate + bonus)
        except ValueError as err:
            raise ValidationError(str(err), code="INVALID_COMMISSION_RATE") from err

    @staticmethod
    def _require_visible(principal: Principal, commission: Commission) -> None:
        if not principal.is_admin and commission.partner_id != principal.user_id:
            raise AuthorizationError("Partners can only access their own commissions")

    async def _get_or_raise(self, commission_id: uuid.UUID) -> Commission:
        commission = await self._commission_repo.get_by_id(commission_id)
        if commission is None:
            raise CommissionNotFoundError(str(commission_id))
        return commission

    def _fire_transition(self, commission: Commission, event_name: str) -> None:
        """Validate a commission transition.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        try:
            validate_transition(CommissionStateMachine, commission.status, event_name)
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(commission.status, event_name) from err
