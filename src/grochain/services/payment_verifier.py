"""Payment Verifier — periodic reconciliation of pending transactions.

Closes the gap between asynchronous provider webhooks and local truth by
polling the provider for recent pending transactions:

    every RECONCILER_INTERVAL_SECONDS:
        pending transactions created in the last RECONCILER_LOOKBACK_MINUTES,
        oldest first, at most RECONCILER_BATCH_SIZE
            -> verify_with_provider(reference)    (bounded by the provider timeout)
            -> PaymentReconciler.settle_paid       (own session, own transaction)

Provider failures leave the transaction pending; the next pass retries it
while it is still inside the look-back window. Records are processed
sequentially, so one pass takes at most batch_size x timeout.

The verifier is an explicit object owned by whoever wires it up (the FastAPI
lifespan keeps it on ``app.state``, the CLI keeps it on the stack). It holds
its own scheduler handle, re-entrancy flag and in-flight pass task.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from grochain.config import get_settings
from grochain.domain.enums import TransactionStatus
from grochain.domain.provider_protocol import ProviderVerification
from grochain.infrastructure.database.repositories import TransactionRepository
from grochain.logging_config import get_logger
from grochain.services.payment_reconciler import PaymentReconciler

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from grochain.config import Settings
    from grochain.domain.provider_protocol import PaymentProvider

logger = get_logger(__name__)

JOB_ID = "payment_reconciliation"


def _log_pass_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("reconciler.pass_failed", error=str(task.exception()))


@dataclass
class ReconciliationReport:
    """Outcome counters of one reconciliation pass."""

    checked: int = 0
    verified: int = 0
    already_completed: int = 0
    unpaid: int = 0
    errors: int = 0
    skipped: bool = False
    duration_ms: float = 0.0
    references: dict[str, str] = field(default_factory=dict)

    def record(self, reference: str, outcome: str) -> None:
        self.references[reference] = outcome
        if outcome == "verified":
            self.verified += 1
        elif outcome == "already_completed":
            self.already_completed += 1
        elif outcome == "unpaid":
            self.unpaid += 1
        else:
            self.errors += 1

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "verified": self.verified,
            "already_completed": self.already_completed,
            "unpaid": self.unpaid,
            "errors": self.errors,
            "skipped": self.skipped,
            "duration_ms": round(self.duration_ms, 2),
        }


class PaymentVerifier:
    """Polls the payment provider and reconciles pending transactions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: PaymentProvider,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._provider = provider
        self._settings = settings or get_settings()
        self._scheduler: AsyncIOScheduler | None = None
        self._pass_running = False
        self._pass_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        """True while the periodic job is scheduled."""
        return self._scheduler is not None and self._scheduler.running

    @property
    def pass_in_progress(self) -> bool:
        return self._pass_running

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Schedule passes every interval, the first one immediately.

        Must be called from inside a running event loop.
        """
        if self.is_running:
            logger.warning("reconciler.already_started")
            return

        interval = self._settings.reconciler_interval_seconds
        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduler.add_job(
            self._launch_pass,
            trigger=IntervalTrigger(seconds=interval, timezone=UTC),
            id=JOB_ID,
            name="Reconcile pending payment transactions",
            next_run_time=datetime.now(UTC),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "reconciler.started",
            interval_seconds=interval,
            lookback_minutes=self._settings.reconciler_lookback_minutes,
            batch_size=self._settings.reconciler_batch_size,
        )

    async def stop(self) -> None:
        """Stop scheduling passes and wait for an in-flight pass to finish.

        Callers close the provider client and the engine only after this
        returns.
        """
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("reconciler.stopped", pass_in_progress=self._pass_running)

        task, self._pass_task = self._pass_task, None
        if task is not None and not task.done():
            await asyncio.wait([task])
            logger.info("reconciler.pass_drained")

    async def _launch_pass(self) -> None:
        # Scheduler job. The pass runs as a task owned here rather than by the
        # executor, which cancels its own futures on shutdown.
        if self._pass_task is not None and not self._pass_task.done():
            logger.info("reconciler.pass_skipped", reason="previous pass still running")
            return
        self._pass_task = asyncio.create_task(self.run_reconciliation_pass())
        self._pass_task.add_done_callback(_log_pass_failure)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def run_reconciliation_pass(self) -> ReconciliationReport:
        """Reconcile one batch of recent pending transactions.

        Returns immediately with ``skipped=True`` if another pass is running.
        """
        if self._pass_running:
            logger.info("reconciler.pass_skipped", reason="previous pass still running")
            return ReconciliationReport(skipped=True)

        self._pass_running = True
        report = ReconciliationReport()
        started = time.monotonic()
        with structlog.contextvars.bound_contextvars(pass_id=uuid.uuid4().hex[:12]):
            try:
                references = await self._pending_references()
                report.checked = len(references)
                for reference in references:
                    try:
                        outcome = await self._reconcile_one(reference)
                    except Exception:
                        logger.exception("reconciler.record_failed", reference=reference)
                        outcome = "error"
                    report.record(reference, outcome)
            finally:
                self._pass_running = False
                report.duration_ms = (time.monotonic() - started) * 1000

            log = logger.info if report.checked else logger.debug
            log("reconciler.pass_completed", **report.to_dict())
        return report

    async def verify_with_provider(self, reference: str) -> ProviderVerification:
        """Ask the provider about ``reference``; never raises.

        The provider client enforces its own request timeout; the wait_for
        bound here caps the whole call, retries and DNS included.
        """
        timeout = self._settings.paystack_timeout_seconds
        try:
            return await asyncio.wait_for(self._provider.verify_transaction(reference), timeout)
        except TimeoutError:
            logger.warning("reconciler.provider_timeout", reference=reference, timeout=timeout)
            return ProviderVerification.failed(f"timeout after {timeout}s")
        except Exception as e:
            logger.exception("reconciler.provider_failed", reference=reference)
            return ProviderVerification.failed(f"provider error: {e}")

    async def verify_reference(self, reference: str) -> dict:
        """Operator-triggered verification of a single reference.

        Raises TransactionNotFoundError for an unknown reference. A completed
        transaction is not re-sent to the provider; its Order step is
        re-applied instead.
        """
        async with self._session_factory.begin() as session:
            reconciler = PaymentReconciler(session, self._settings)
            transaction = await reconciler.get_transaction(reference)
            if transaction.status != TransactionStatus.PENDING.value:
                settlement = await reconciler.repair_order(transaction)
                logger.info(
                    "reconciler.manual_verify_settled",
                    reference=reference,
                    status=transaction.status,
                    order_paid=settlement.order_paid,
                )
                return {
                    "reference": reference,
                    "verification": None,
                    "settlement": settlement.to_dict(),
                }

        verification = await self.verify_with_provider(reference)
        result: dict = {
            "reference": reference,
            "verification": verification.to_dict(),
            "settlement": None,
        }
        if verification.success and verification.paid:
            async with self._session_factory.begin() as session:
                settlement = await PaymentReconciler(session, self._settings).settle_paid(
                    reference, verification, source="manual"
                )
            result["settlement"] = settlement.to_dict()
        else:
            result["settlement"] = {
                "reference": reference,
                "transaction_status": TransactionStatus.PENDING.value,
                "transaction_completed": False,
                "order_paid": False,
                "commissions_created": 0,
            }

        logger.info(
            "reconciler.manual_verify",
            reference=reference,
            success=verification.success,
            paid=verification.paid,
        )
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _pending_references(self) -> list[str]:
        cutoff = datetime.now(UTC) - timedelta(minutes=self._settings.reconciler_lookback_minutes)
        async with self._session_factory() as session:
            transactions = await TransactionRepository(session).list_pending_since(
                cutoff, limit=self._settings.reconciler_batch_size
            )
            return [t.reference for t in transactions]

    async def _reconcile_one(self, reference: str) -> str:
        verification = await self.verify_with_provider(reference)
        if not verification.success:
            logger.warning(
                "reconciler.verification_unsuccessful",
                reference=reference,
                error=verification.error,
            )
            return "error"
        if not verification.paid:
            logger.debug(
                "reconciler.not_paid",
                reference=reference,
                provider_status=verification.provider_status,
            )
            return "unpaid"

        async with self._session_factory.begin() as session:
            settlement = await PaymentReconciler(session, self._settings).settle_paid(
                reference, verification, source="poller"
            )
        return "verified" if settlement.transaction_completed else "already_completed"
