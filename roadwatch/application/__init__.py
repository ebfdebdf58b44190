"""Application layer package - use cases and services."""

from roadwatch.application.payment_orchestrator import (
    PaymentInitiation,
    PaymentOrchestrator,
    PaymentReceipt,
    PaymentRequest,
    PaymentStatistics,
    PaymentVerification,
)
from roadwatch.application.transaction import transaction
from roadwatch.application.vehicle_registry import (
    BulkImportResult,
    PlateLookupResult,
    VehicleRegistry,
)
from roadwatch.application.violation_ledger import (
    PlateViolationSummary,
    ViolationBatchRequest,
    ViolationBatchResult,
    ViolationLedger,
    ViolationSearchResult,
)

__all__ = [
    "VehicleRegistry",
    "PlateLookupResult",
    "BulkImportResult",
    "ViolationLedger",
    "ViolationBatchRequest",
    "ViolationBatchResult",
    "PlateViolationSummary",
    "ViolationSearchResult",
    "PaymentOrchestrator",
    "PaymentRequest",
    "PaymentInitiation",
    "PaymentVerification",
    "PaymentStatistics",
    "PaymentReceipt",
    "transaction",
]
