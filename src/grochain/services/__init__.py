"""Application services — use case orchestration."""

from grochain.services.commission_service import CommissionService
from grochain.services.harvest_service import HarvestService
from grochain.services.listing_service import ListingService
from grochain.services.order_service import OrderService
from grochain.services.payment_reconciler import PaymentReconciler
from grochain.services.payment_verifier import PaymentVerifier, ReconciliationReport
from grochain.services.webhook_service import WebhookService

__all__ = [
    "CommissionService",
    "HarvestService",
    "ListingService",
    "OrderService",
    "PaymentReconciler",
    "PaymentVerifier",
    "ReconciliationReport",
    "WebhookService",
]
