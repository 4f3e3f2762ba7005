"""Short-term rentals: segment ledger, lifecycle, persistence and service."""

from rental_modules.rentals.ledger import (
    append_extension,
    baseline_total,
    change_delta,
    grand_total_extension_basis,
    last_extension_delta,
    open_ledger,
    record_rental_payment,
    reprice_open_segment,
    split_at_change,
    verify_ledger,
)
from rental_modules.rentals.lifecycle import (
    RENTAL_LIFECYCLE_WORKFLOW,
    RentalLifecycleStateMachine,
)
from rental_modules.rentals.models import (
    LedgerMutation,
    LedgerMutationRecord,
    MutationKind,
    PricingSegment,
    Rental,
    RentalPayment,
    RentalStatus,
    RentalSummary,
    SegmentOrigin,
    Settlement,
)
from rental_modules.rentals.service import RentalBillingService

__all__ = [
    "append_extension",
    "baseline_total",
    "change_delta",
    "grand_total_extension_basis",
    "last_extension_delta",
    "open_ledger",
    "record_rental_payment",
    "reprice_open_segment",
    "split_at_change",
    "verify_ledger",
    "RENTAL_LIFECYCLE_WORKFLOW",
    "RentalLifecycleStateMachine",
    "LedgerMutation",
    "LedgerMutationRecord",
    "MutationKind",
    "PricingSegment",
    "Rental",
    "RentalPayment",
    "RentalStatus",
    "RentalSummary",
    "SegmentOrigin",
    "Settlement",
    "RentalBillingService",
]
