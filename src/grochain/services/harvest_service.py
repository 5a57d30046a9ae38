"""Harvest Approval Gate.

Coordinates the HarvestStateMachine, the harvest repository and farmer
notifications. Every mutating operation checks the caller's capability
BEFORE touching the database, so a forbidden caller learns nothing about
which harvests exist.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from grochain.domain.enums import (
    APPROVER_ROLES,
    HarvestStatus,
    NotificationCategory,
    QualityGrade,
    UserRole,
)
from grochain.domain.exceptions import (
    HarvestNotFoundError,
    HarvestNotPendingError,
    InvalidStateTransitionError,
    ValidationError,
)
from grochain.domain.state_machine import HarvestStateMachine, validate_transition
from grochain.infrastructure.database.orm_models import Harvest
from grochain.infrastructure.database.repositories import (
    HarvestRepository,
    NotificationRepository,
    Page,
)
from grochain.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from grochain.domain.principal import Principal

logger = get_logger(__name__)


class HarvestService:
    """Submission and approval lifecycle of harvest batches."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._harvest_repo = HarvestRepository(session)
        self._notification_repo = NotificationRepository(session)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_harvest(
        self,
        principal: Principal,
        crop_type: str,
        quantity: Decimal,
        unit: str,
        location: str | None = None,
        description: str | None = None,
        quality: str | None = None,
        partner_id: str | None = None,
    ) -> Harvest:
        """Record a new harvest batch in ``pending`` for the calling farmer."""
        principal.require_role(UserRole.FARMER, action="submit harvests")

        harvest = Harvest(
            farmer_id=principal.user_id,
            partner_id=partner_id,
            crop_type=crop_type,
            quantity=quantity,
            unit=unit,
            location=location,
            description=description,
            quality=quality,
            status=HarvestStatus.PENDING.value,
        )
        harvest = await self._harvest_repo.create(harvest)
        logger.info(
            "harvest.submitted",
            harvest_id=str(harvest.id),
            farmer_id=principal.user_id,
            crop_type=crop_type,
        )
        return harvest

    # ------------------------------------------------------------------
    # Approval gate
    # ------------------------------------------------------------------

    async def approve(
        self,
        principal: Principal,
        harvest_id: uuid.UUID,
        quality: QualityGrade,
        notes: str | None = None,
    ) -> Harvest:
        """Move a pending harvest to ``approved`` and notify the farmer."""
        principal.require_role(*APPROVER_ROLES, action="approve harvests")
        harvest = await self._get_pending_or_raise(harvest_id, self._approver_scope(principal))
        return await self._apply_approval(principal, harvest, quality, notes)

    async def reject(
        self,
        principal: Principal,
        harvest_id: uuid.UUID,
        reason: str,
    ) -> Harvest:
        """Move a pending harvest to ``rejected`` and notify the farmer."""
        principal.require_role(*APPROVER_ROLES, action="reject harvests")
        reason = self._require_reason(reason)
        harvest = await self._get_pending_or_raise(harvest_id, self._approver_scope(principal))
        return await self._apply_rejection(principal, harvest, reason)

    async def pending_for_approver(
        self,
        principal: Principal,
        crop_type: str | None = None,
        location: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        """Review queue for the caller, oldest submission first."""
        principal.require_role(*APPROVER_ROLES, action="view the approval queue")
        return await self._harvest_repo.list_pending(
            approver_id=self._approver_scope(principal),
            crop_type=crop_type,
            location=location,
            page=page,
            limit=limit,
        )

    async def bulk_process(
        self,
        principal: Principal,
        harvest_ids: list[uuid.UUID],
        action: str,
        quality: QualityGrade | None = None,
        rejection_reason: str | None = None,
    ) -> int:
        """Approve or reject every still-pending harvest in ``harvest_ids``.

        Harvests that already left ``pending`` are skipped. Returns the number
        processed; raises HarvestNotFoundError when nothing matched.
        """
        principal.require_role(*APPROVER_ROLES, action="process harvests")
        if action not in ("approve", "reject"):
            raise ValidationError(f"Unknown bulk action '{action}'", code="INVALID_ACTION")
        if action == "approve" and quality is None:
            raise ValidationError("Quality is required when approving", code="QUALITY_REQUIRED")
        reason = self._require_reason(rejection_reason) if action == "reject" else None

        harvests = await self._harvest_repo.get_pending_by_ids(
            harvest_ids, self._approver_scope(principal)
        )
        if not harvests:
            raise HarvestNotFoundError(", ".join(str(h) for h in harvest_ids))

        for harvest in harvests:
            if action == "approve":
                await self._apply_approval(principal, harvest, quality, None)
            else:
                await self._apply_rejection(principal, harvest, reason)

        logger.info(
            "harvest.bulk_processed",
            action=action,
            requested=len(harvest_ids),
            processed=len(harvests),
            by=principal.user_id,
        )
        return len(harvests)

    async def approval_stats(
        self,
        principal: Principal,
        partner_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict:
        """Decision counts, approval rate and distributions of approved harvests.

        Decisions are attributed to the partner who made them (``verified_by``)
        and filtered by decision date; ``pending`` is that partner's queue.
        """
        principal.require_role(*APPROVER_ROLES, action="view approval statistics")
        if start_date and end_date and end_date <= start_date:
            raise ValidationError("end_date must be after start_date", code="INVALID_DATE_RANGE")
        if not principal.is_admin:
            partner_id = principal.user_id

        counts = await self._harvest_repo.count_by_status(partner_id, start_date, end_date)
        approved = counts.get(HarvestStatus.APPROVED.value, 0)
        rejected = counts.get(HarvestStatus.REJECTED.value, 0)
        decided = approved + rejected
        return {
            "total": sum(counts.values()),
            "pending": counts.get(HarvestStatus.PENDING.value, 0),
            "approved": approved,
            "rejected": rejected,
            "approval_rate": round(approved / decided * 100, 2) if decided else 0.0,
            "quality_distribution": await self._harvest_repo.approved_distribution(
                "quality", partner_id, start_date, end_date
            ),
            "crop_distribution": await self._harvest_repo.approved_distribution(
                "crop_type", partner_id, start_date, end_date
            ),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _apply_approval(
        self,
        principal: Principal,
        harvest: Harvest,
        quality: QualityGrade,
        notes: str | None,
    ) -> Harvest:
        self._fire_transition(harvest, "approve")

        harvest.quality = QualityGrade(quality).value
        harvest.approval_notes = notes
        harvest.verified_by = principal.user_id
        harvest.verified_at = datetime.now(UTC)
        await self._harvest_repo.update_status(harvest, HarvestStatus.APPROVED)

        await self._notification_repo.record(
            user_id=harvest.farmer_id,
            title="Harvest approved",
            message=(
                f"Your {harvest.crop_type} harvest ({harvest.batch_id}) was approved "
                f"with {harvest.quality} quality and can now be listed."
            ),
            category=NotificationCategory.HARVEST.value,
            data={"harvest_id": str(harvest.id), "status": HarvestStatus.APPROVED.value},
        )
        logger.info(
            "harvest.approved",
            harvest_id=str(harvest.id),
            quality=harvest.quality,
            by=principal.user_id,
        )
        return harvest

    async def _apply_rejection(
        self,
        principal: Principal,
        harvest: Harvest,
        reason: str,
    ) -> Harvest:
        self._fire_transition(harvest, "reject")

        harvest.rejection_reason = reason
        harvest.verified_by = principal.user_id
        harvest.verified_at = datetime.now(UTC)
        await self._harvest_repo.update_status(harvest, HarvestStatus.REJECTED)

        await self._notification_repo.record(
            user_id=harvest.farmer_id,
            title="Harvest rejected",
            message=f"Your {harvest.crop_type} harvest ({harvest.batch_id}) was rejected: {reason}",
            category=NotificationCategory.HARVEST.value,
            data={
                "harvest_id": str(harvest.id),
                "status": HarvestStatus.REJECTED.value,
                "reason": reason,
            },
        )
        logger.info("harvest.rejected", harvest_id=str(harvest.id), by=principal.user_id)
        return harvest

    @staticmethod
    def _require_reason(reason: str | None) -> str:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError("Rejection reason is required", code="REJECTION_REASON_REQUIRED")
        return cleaned

    @staticmethod
    def _approver_scope(principal: Principal) -> str | None:
        """Partner whose harvests, plus unassigned ones, the caller may decide."""
        return None if principal.is_admin else principal.user_id

    async def _get_pending_or_raise(
        self, harvest_id: uuid.UUID, approver_scope: str | None
    ) -> Harvest:
        harvest = await self._harvest_repo.get_by_id(harvest_id)
        if harvest is None:
            raise HarvestNotFoundError(str(harvest_id))
        if approver_scope is not None and harvest.partner_id not in (None, approver_scope):
            raise HarvestNotFoundError(str(harvest_id))
        if harvest.status != HarvestStatus.PENDING.value:
            raise HarvestNotPendingError(str(harvest_id), harvest.status)
        return harvest

    def _fire_transition(self, harvest: Harvest, event_name: str) -> None:
        """Validate a transition on the harvest's state machine.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        try:
            validate_transition(HarvestStateMachine, harvest.status, event_name)
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(harvest.status, event_name) from err
