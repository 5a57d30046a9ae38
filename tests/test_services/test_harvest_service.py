"""Tests for the harvest approval gate."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from factories import make_harvest

from grochain.domain.enums import QualityGrade
from grochain.domain.exceptions import (
    AuthorizationError,
    HarvestNotFoundError,
    HarvestNotPendingError,
    ValidationError,
)
from grochain.infrastructure.database.repositories import NotificationRepository
from grochain.services.harvest_service import HarvestService

pytestmark = pytest.mark.asyncio


class TestSubmitHarvest:
    async def test_farmer_submits_pending_harvest(self, session, farmer) -> None:
        harvest = await HarvestService(session).submit_harvest(
            farmer, crop_type="Cassava", quantity=Decimal("1200"), unit="kg", partner_id="partner-1"
        )
        assert harvest.status == "pending"
        assert harvest.farmer_id == "farmer-1"
        assert harvest.batch_id.startswith("HB-")

    async def test_buyer_cannot_submit(self, session, buyer) -> None:
        with pytest.raises(AuthorizationError):
            await HarvestService(session).submit_harvest(
                buyer, crop_type="Cassava", quantity=Decimal("1"), unit="kg"
            )


class TestApproveHarvest:
    async def test_partner_approves(self, session, partner) -> None:
        harvest = await make_harvest(session)
        result = await HarvestService(session).approve(
            partner, harvest.id, QualityGrade.EXCELLENT, notes="Dry, well sorted"
        )
        assert result.status == "approved"
        assert result.quality == "excellent"
        assert result.verified_by == "partner-1"
        assert result.verified_at is not None
        assert result.approval_notes == "Dry, well sorted"

    async def test_farmer_is_notified(self, session, partner) -> None:
        harvest = await make_harvest(session)
        await HarvestService(session).approve(partner, harvest.id, QualityGrade.GOOD)
        notifications = await NotificationRepository(session).list_for_user("farmer-1")
        assert len(notifications) == 1
        assert notifications[0].category == "harvest"
        assert notifications[0].data["status"] == "approved"

    async def test_farmer_cannot_approve(self, session, farmer) -> None:
        harvest = await make_harvest(session)
        with pytest.raises(AuthorizationError):
            await HarvestService(session).approve(farmer, harvest.id, QualityGrade.GOOD)
        assert harvest.status == "pending"

    async def test_role_checked_before_lookup(self, session, buyer) -> None:
        with pytest.raises(AuthorizationError):
            await HarvestService(session).approve(buyer, uuid.uuid4(), QualityGrade.GOOD)

    async def test_unknown_harvest(self, session, admin) -> None:
        with pytest.raises(HarvestNotFoundError):
            await HarvestService(session).approve(admin, uuid.uuid4(), QualityGrade.GOOD)

    async def test_already_approved_is_not_pending(self, session, admin) -> None:
        harvest = await make_harvest(session, status="approved")
        with pytest.raises(HarvestNotPendingError) as exc_info:
            await HarvestService(session).approve(admin, harvest.id, QualityGrade.POOR)
        assert exc_info.value.current_status == "approved"

    async def test_rejected_cannot_be_approved(self, session, admin) -> None:
        harvest = await make_harvest(session, status="rejected")
        with pytest.raises(HarvestNotPendingError):
            await HarvestService(session).approve(admin, harvest.id, QualityGrade.GOOD)
        assert harvest.status == "rejected"


    async def test_other_partners_harvest_is_not_found(
        self, session, partner, other_partner
    ) -> None:
        harvest = await make_harvest(session, partner_id=partner.user_id)
        service = HarvestService(session)
        assert (await service.pending_for_approver(other_partner)).total == 0

        with pytest.raises(HarvestNotFoundError):
            await service.approve(other_partner, harvest.id, QualityGrade.GOOD)
        with pytest.raises(HarvestNotFoundError):
            await service.reject(other_partner, harvest.id, "Not mine to reject")
        assert harvest.status == "pending"

    async def test_unassigned_harvest_open_to_any_partner(self, session, other_partner) -> None:
        harvest = await make_harvest(session, partner_id=None)
        result = await HarvestService(session).approve(other_partner, harvest.id, QualityGrade.FAIR)
        assert result.verified_by == other_partner.user_id

class TestRejectHarvest:
    async def test_reject_with_reason(self, session, partner) -> None:
        harvest = await make_harvest(session)
        result = await HarvestService(session).reject(partner, harvest.id, "  Moisture too high  ")
        assert result.status == "rejected"
        assert result.rejection_reason == "Moisture too high"

    @pytest.mark.parametrize("reason", ["", "   "])
    async def test_blank_reason(self, session, partner, reason: str) -> None:
        harvest = await make_harvest(session)
        with pytest.raises(ValidationError) as exc_info:
            await HarvestService(session).reject(partner, harvest.id, reason)
        assert exc_info.value.code == "REJECTION_REASON_REQUIRED"
        assert harvest.status == "pending"


class TestPendingQueue:
    async def test_oldest_first_and_scoped_to_partner(self, session, partner, admin) -> None:
        first = await make_harvest(session, partner_id="partner-1", crop_type="Maize")
        await make_harvest(session, partner_id="partner-2", crop_type="Rice")
        unassigned = await make_harvest(session, partner_id=None, crop_type="Yam")
        await make_harvest(session, partner_id="partner-1", status="approved")

        page = await HarvestService(session).pending_for_approver(partner)
        assert [h.id for h in page.items] == [first.id, unassigned.id]
        assert page.total == 2

        admin_page = await HarvestService(session).pending_for_approver(admin)
        assert admin_page.total == 3

    async def test_filters(self, session, admin) -> None:
        await make_harvest(session, crop_type="Maize", location="Kaduna")
        await make_harvest(session, crop_type="Sweet Maize", location="Kano")
        await make_harvest(session, crop_type="Rice", location="Kano")

        page = await HarvestService(session).pending_for_approver(admin, crop_type="maize")
        assert page.total == 2
        page = await HarvestService(session).pending_for_approver(
            admin, crop_type="maize", location="kano"
        )
        assert page.total == 1

    async def test_pagination(self, session, admin) -> None:
        for _ in range(5):
            await make_harvest(session)
        page = await HarvestService(session).pending_for_approver(admin, page=2, limit=2)
        assert len(page.items) == 2
        assert page.total == 5
        assert page.pages == 3

    async def test_buyer_has_no_queue(self, session, buyer) -> None:
        with pytest.raises(AuthorizationError):
            await HarvestService(session).pending_for_approver(buyer)


class TestBulkProcess:
    async def test_bulk_approve_skips_decided(self, session, admin) -> None:
        a = await make_harvest(session)
        b = await make_harvest(session)
        done = await make_harvest(session, status="rejected")

        processed = await HarvestService(session).bulk_process(
            admin, [a.id, b.id, done.id], "approve", quality=QualityGrade.FAIR
        )
        assert processed == 2
        assert a.status == b.status == "approved"
        assert done.status == "rejected"

    async def test_bulk_reject(self, session, admin) -> None:
        a = await make_harvest(session)
        processed = await HarvestService(session).bulk_process(
            admin, [a.id], "reject", rejection_reason="Pests found"
        )
        assert processed == 1
        assert a.rejection_reason == "Pests found"

    async def test_nothing_matched(self, session, admin) -> None:
        with pytest.raises(HarvestNotFoundError):
            await HarvestService(session).bulk_process(
                admin, [uuid.uuid4()], "approve", quality=QualityGrade.GOOD
            )

    async def test_approve_requires_quality(self, session, admin) -> None:
        a = await make_harvest(session)
        with pytest.raises(ValidationError):
            await HarvestService(session).bulk_process(admin, [a.id], "approve")

    async def test_partner_cannot_touch_other_partners_harvests(self, session, partner) -> None:
        other = await make_harvest(session, partner_id="partner-2")
        with pytest.raises(HarvestNotFoundError):
            await HarvestService(session).bulk_process(
                partner, [other.id], "approve", quality=QualityGrade.GOOD
            )
        assert other.status == "pending"


class TestApprovalStats:
    async def test_counts_and_distributions(self, session, admin) -> None:
        await make_harvest(session, status="approved", quality="good", crop_type="Maize")
        await make_harvest(session, status="approved", quality="excellent", crop_type="Maize")
        await make_harvest(session, status="approved", quality="good", crop_type="Rice")
        await make_harvest(session, status="rejected")
        await make_harvest(session)

        stats = await HarvestService(session).approval_stats(admin)
        assert stats["total"] == 5
        assert stats["pending"] == 1
        assert stats["approved"] == 3
        assert stats["rejected"] == 1
        assert stats["approval_rate"] == 75.0
        assert stats["quality_distribution"] == {"good": 2, "excellent": 1}
        assert stats["crop_distribution"] == {"Maize": 2, "Rice": 1}

    async def test_partner_sees_only_own(self, session, partner) -> None:
        await make_harvest(session, partner_id="partner-1", status="approved")
        await make_harvest(session, partner_id="partner-2", status="approved")
        stats = await HarvestService(session).approval_stats(partner, partner_id="partner-2")
        assert stats["total"] == 1

    async def test_empty(self, session, admin) -> None:
        stats = await HarvestService(session).approval_stats(admin)
        assert stats["total"] == 0
        assert stats["approval_rate"] == 0.0

    async def test_decisions_count_for_the_approving_partner(
        self, session, partner, admin
    ) -> None:
        now = datetime.now(UTC)
        await make_harvest(
            session, partner_id="partner-2", status="approved", verified_by="partner-1"
        )
        await make_harvest(
            session, partner_id="partner-1", status="rejected", verified_by="partner-2"
        )
        await make_harvest(
            session,
            status="approved",
            verified_by="partner-1",
            verified_at=now - timedelta(days=40),
        )
        await make_harvest(session, partner_id=None)

        stats = await HarvestService(session).approval_stats(
            partner, start_date=now - timedelta(days=30), end_date=now + timedelta(minutes=1)
        )
        assert stats["approved"] == 1
        assert stats["rejected"] == 0
        assert stats["pending"] == 1

        by_admin = await HarvestService(session).approval_stats(admin, partner_id="partner-2")
        assert by_admin["approved"] == 0
        assert by_admin["rejected"] == 1
