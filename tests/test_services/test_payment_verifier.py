"""Tests for the payment verifier and the shared settlement path.

Setup data is committed before the verifier runs because the verifier opens
its own sessions; results are read back through a fresh session.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from factories import FakeProvider, make_sale, make_transaction, paid_verification
from sqlalchemy import func, select

from grochain.domain.exceptions import TransactionNotFoundError
from grochain.domain.provider_protocol import ProviderVerification
from grochain.infrastructure.database.orm_models import (
    Commission,
    MarketplaceListing,
    Order,
    Transaction,
)
from grochain.services.payment_reconciler import PaymentReconciler
from grochain.services.payment_verifier import PaymentVerifier

pytestmark = pytest.mark.asyncio


async def _load(session_factory, model, **where):
    async with session_factory() as check:
        result = await check.execute(select(model).filter_by(**where))
        return result.scalar_one()


async def _count(session_factory, model) -> int:
    async with session_factory() as check:
        return await check.scalar(select(func.count()).select_from(model))


class TestReconciliationPass:
    async def test_paid_reference_completes_transaction_and_order(
        self, session, session_factory, settings
    ) -> None:
        _, listing, order, _ = await make_sale(session, reference="TX1")
        await session.commit()
        assert order.total == Decimal("50000.00")

        provider = FakeProvider({"TX1": paid_verification("TX1", 50000)})
        report = await PaymentVerifier(session_factory, provider, settings).run_reconciliation_pass()

        assert report.checked == 1
        assert report.verified == 1
        assert report.references == {"TX1": "verified"}

        transaction = await _load(session_factory, Transaction, reference="TX1")
        assert transaction.status == "completed"
        assert transaction.processed_at is not None
        assert transaction.metadata_json["auto_verified"] is True
        assert transaction.metadata_json["verification_source"] == "poller"
        assert transaction.metadata_json["provider_verification"]["amount"] == "50000"

        paid_order = await _load(session_factory, Order, id=order.id)
        assert paid_order.status == "paid"
        assert paid_order.payment_status == "paid"
        assert paid_order.payment_reference == "TX1"

        sold_listing = await _load(session_factory, MarketplaceListing, id=listing.id)
        assert sold_listing.quantity == Decimal("495")

        commission = await _load(session_factory, Commission, transaction_id="TX1")
        assert commission.partner_id == "partner-1"
        assert commission.amount == Decimal("50000.00")
        assert commission.commission_amount == Decimal("2500.00")
        assert commission.transaction_type == "marketplace_sale"

    async def test_unpaid_reference_stays_pending(self, session, session_factory, settings) -> None:
        await make_sale(session, reference="TX2")
        await session.commit()

        report = await PaymentVerifier(
            session_factory, FakeProvider(), settings
        ).run_reconciliation_pass()

        assert report.unpaid == 1
        assert (await _load(session_factory, Transaction, reference="TX2")).status == "pending"

    async def test_provider_error_leaves_pending(self, session, session_factory, settings) -> None:
        await make_sale(session, reference="TX3")
        await session.commit()

        provider = FakeProvider(error=RuntimeError("connection reset"))
        report = await PaymentVerifier(session_factory, provider, settings).run_reconciliation_pass()

        assert report.errors == 1
        assert report.references == {"TX3": "error"}
        assert (await _load(session_factory, Transaction, reference="TX3")).status == "pending"

    async def test_one_failure_does_not_stop_the_pass(
        self, session, session_factory, settings
    ) -> None:
        await make_sale(session, reference="BAD")
        await make_sale(session, reference="GOOD")
        await session.commit()

        provider = FakeProvider(
            {"BAD": ProviderVerification.failed("HTTP 500"), "GOOD": paid_verification("GOOD")}
        )
        report = await PaymentVerifier(session_factory, provider, settings).run_reconciliation_pass()

        assert report.references == {"BAD": "error", "GOOD": "verified"}

    async def test_outside_lookback_window_is_ignored(
        self, session, session_factory, settings
    ) -> None:
        await make_transaction(
            session, reference="OLD", created_at=datetime.now(UTC) - timedelta(minutes=10)
        )
        await make_transaction(session, reference="DONE", status="completed")
        await session.commit()

        provider = FakeProvider({"OLD": paid_verification("OLD")})
        report = await PaymentVerifier(session_factory, provider, settings).run_reconciliation_pass()

        assert report.checked == 0
        assert provider.verify_calls == []
        assert (await _load(session_factory, Transaction, reference="OLD")).status == "pending"

    async def test_batch_size_caps_records_oldest_first(
        self, session, session_factory, settings
    ) -> None:
        now = datetime.now(UTC)
        for minutes_ago, reference in [(1, "NEWEST"), (3, "OLDEST"), (2, "MIDDLE")]:
            await make_transaction(
                session, reference=reference, created_at=now - timedelta(minutes=minutes_ago)
            )
        await session.commit()

        provider = FakeProvider()
        small_batch = settings.model_copy(update={"reconciler_batch_size": 2})
        report = await PaymentVerifier(session_factory, provider, small_batch).run_reconciliation_pass()

        assert report.checked == 2
        assert provider.verify_calls == ["OLDEST", "MIDDLE"]

    async def test_pass_is_bounded_when_every_call_times_out(
        self, session, session_factory, settings
    ) -> None:
        for i in range(12):
            await make_transaction(session, reference=f"SLOW{i}")
        await session.commit()

        fast_timeout = settings.model_copy(update={"paystack_timeout_seconds": 0.05})
        provider = FakeProvider(delay=5)
        report = await PaymentVerifier(session_factory, provider, fast_timeout).run_reconciliation_pass()

        assert report.checked == 10
        assert report.errors == 10
        assert report.duration_ms < 3000
        async with session_factory() as check:
            statuses = (await check.scalars(select(Transaction.status))).all()
        assert set(statuses) == {"pending"}


class TestIdempotency:
    async def test_second_pass_does_not_double_credit(
        self, session, session_factory, settings
    ) -> None:
        _, listing, _, _ = await make_sale(session, reference="TX1")
        await session.commit()

        verifier = PaymentVerifier(
            session_factory, FakeProvider({"TX1": paid_verification("TX1")}), settings
        )
        first = await verifier.run_reconciliation_pass()
        second = await verifier.run_reconciliation_pass()

        assert first.verified == 1
        assert second.checked == 0
        assert await _count(session_factory, Commission) == 1

    async def test_replayed_settlement_is_a_no_op(
        self, session, session_factory, settings
    ) -> None:
        _, listing, order, _ = await make_sale(session, reference="TX1")
        await session.commit()

        results = []
        for source in ("webhook", "poller"):
            async with session_factory.begin() as s:
                results.append(
                    await PaymentReconciler(s, settings).settle_paid(
                        "TX1", paid_verification("TX1"), source=source
                    )
                )

        assert results[0].transaction_completed and results[0].order_paid
        assert results[0].commissions_created == 1
        assert not results[1].transaction_completed
        assert not results[1].order_paid
        assert results[1].commissions_created == 0
        assert results[1].transaction_status == "completed"

        transaction = await _load(session_factory, Transaction, reference="TX1")
        assert transaction.metadata_json["verification_source"] == "webhook"
        assert (await _load(session_factory, MarketplaceListing, id=listing.id)).quantity == Decimal(
            "495"
        )
        assert await _count(session_factory, Commission) == 1


    async def test_payment_on_cancelled_order_does_not_reopen_it(
        self, session, session_factory, settings
    ) -> None:
        _, listing, order, _ = await make_sale(session, reference="TX1")
        order.status = "cancelled"
        await session.commit()

        async with session_factory.begin() as s:
            result = await PaymentReconciler(s, settings).settle_paid(
                "TX1", paid_verification("TX1"), source="webhook"
            )

        assert result.transaction_completed
        assert not result.order_paid
        assert result.commissions_created == 0
        assert (await _load(session_factory, Order, id=order.id)).status == "cancelled"
        assert (await _load(session_factory, MarketplaceListing, id=listing.id)).quantity == Decimal(
            "500"
        )
        assert await _count(session_factory, Commission) == 0

class TestReentrancy:
    async def test_overlapping_pass_is_skipped(self, session, session_factory, settings) -> None:
        await make_transaction(session, reference="HELD")
        await session.commit()

        gate = asyncio.Event()
        provider = FakeProvider(gate=gate)
        verifier = PaymentVerifier(
            session_factory, provider, settings.model_copy(update={"paystack_timeout_seconds": 5})
        )

        running = asyncio.create_task(verifier.run_reconciliation_pass())
        for _ in range(100):
            if provider.verify_calls:
                break
            await asyncio.sleep(0.01)
        assert verifier.pass_in_progress

        overlapping = await verifier.run_reconciliation_pass()
        assert overlapping.skipped
        assert overlapping.checked == 0

        gate.set()
        finished = await running
        assert not finished.skipped
        assert finished.checked == 1
        assert not verifier.pass_in_progress


class TestManualVerification:
    async def test_unknown_reference(self, session_factory, settings, provider) -> None:
        with pytest.raises(TransactionNotFoundError):
            await PaymentVerifier(session_factory, provider, settings).verify_reference("NOPE")
        assert provider.verify_calls == []

    async def test_pending_reference_is_settled(self, session, session_factory, settings) -> None:
        await make_sale(session, reference="TX9")
        await session.commit()

        provider = FakeProvider({"TX9": paid_verification("TX9")})
        result = await PaymentVerifier(session_factory, provider, settings).verify_reference("TX9")

        assert result["verification"]["paid"] is True
        assert result["settlement"]["transaction_completed"] is True
        assert result["settlement"]["order_paid"] is True
        transaction = await _load(session_factory, Transaction, reference="TX9")
        assert transaction.metadata_json["auto_verified"] is False
        assert transaction.metadata_json["verification_source"] == "manual"

    async def test_unpaid_reference_reports_pending(
        self, session, session_factory, settings, provider
    ) -> None:
        await make_transaction(session, reference="TX10")
        await session.commit()

        result = await PaymentVerifier(session_factory, provider, settings).verify_reference("TX10")
        assert result["verification"]["provider_status"] == "abandoned"
        assert result["settlement"]["transaction_status"] == "pending"

    async def test_completed_reference_repairs_unpaid_order(
        self, session, session_factory, settings, provider
    ) -> None:
        _, _, order, transaction = await make_sale(session, reference="TX11")
        transaction.status = "completed"
        await session.commit()

        result = await PaymentVerifier(session_factory, provider, settings).verify_reference("TX11")

        assert provider.verify_calls == []
        assert result["verification"] is None
        assert result["settlement"]["order_paid"] is True
        assert (await _load(session_factory, Order, id=order.id)).status == "paid"


    async def test_completed_reference_leaves_shipped_order_alone(
        self, session, session_factory, settings
    ) -> None:
        _, listing, order, _ = await make_sale(session, reference="TX12")
        await session.commit()
        verifier = PaymentVerifier(
            session_factory, FakeProvider({"TX12": paid_verification("TX12")}), settings
        )
        await verifier.verify_reference("TX12")

        async with session_factory.begin() as s:
            shipped = await s.get(Order, order.id)
            shipped.status = "shipped"

        result = await verifier.verify_reference("TX12")

        assert result["settlement"]["order_paid"] is False
        assert (await _load(session_factory, Order, id=order.id)).status == "shipped"
        assert (await _load(session_factory, MarketplaceListing, id=listing.id)).quantity == Decimal(
            "495"
        )
        assert await _count(session_factory, Commission) == 1

class TestScheduling:
    async def test_start_runs_first_pass_immediately(
        self, session, session_factory, settings
    ) -> None:
        await make_sale(session, reference="TX1")
        await session.commit()

        provider = FakeProvider({"TX1": paid_verification("TX1")})
        verifier = PaymentVerifier(session_factory, provider, settings)
        verifier.start()
        try:
            assert verifier.is_running
            for _ in range(200):
                if provider.verify_calls and not verifier.pass_in_progress:
                    break
                await asyncio.sleep(0.01)
        finally:
            await verifier.stop()

        assert not verifier.is_running
        assert provider.verify_calls == ["TX1"]
        assert (await _load(session_factory, Transaction, reference="TX1")).status == "completed"

    async def test_stop_without_start(self, session_factory, settings, provider) -> None:
        verifier = PaymentVerifier(session_factory, provider, settings)
        await verifier.stop()
        assert not verifier.is_running

    async def test_stop_waits_for_in_flight_pass(self, session, session_factory, settings) -> None:
        await make_transaction(session, reference="HELD")
        await session.commit()

        gate = asyncio.Event()
        provider = FakeProvider(gate=gate)
        verifier = PaymentVerifier(
            session_factory, provider, settings.model_copy(update={"paystack_timeout_seconds": 5})
        )
        verifier.start()
        for _ in range(200):
            if provider.verify_calls:
                break
            await asyncio.sleep(0.01)
        assert verifier.pass_in_progress

        asyncio.get_running_loop().call_later(0.05, gate.set)
        await verifier.stop()

        assert gate.is_set()
        assert not verifier.pass_in_progress
        assert not verifier.is_running
