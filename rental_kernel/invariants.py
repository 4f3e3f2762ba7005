"""
Billing Invariants Contract.

These invariants are structural law. No billing policy, operator override or
configuration flag may switch them off.

This module exists to declare them explicitly. Enforcement is distributed
across the segment pricing engine, the tax engine, the rental ledger
(``verify_ledger``) and the long-term scheduler.
"""

from enum import Enum, unique


@unique
class BillingInvariant(str, Enum):
    """Non-configurable invariants enforced by the billing engine.

    Each value names one structural guarantee. Pricing inputs influence
    *what* gets billed, never *whether* these rules apply.
    """

    MINIMUM_ONE_DAY = "minimum_one_day"
    """Every pricing segment bills at least one day. Enforced by
    rental_engines.segment_pricing.day_count_between."""

    SEGMENT_CONTIGUITY = "segment_contiguity"
    """Segments of a rental are ordered, gapless and non-overlapping:
    each segment starts where the previous one ends. Enforced by
    verify_ledger after every mutation."""

    DAY_COUNT_SUM = "day_count_sum"
    """The day counts of all segments add up to the rental duration.
    Enforced by verify_ledger."""

    DERIVED_TOTAL = "derived_total"
    """A rental total is the sum of its segment totals and each segment
    total is recomputed from its pricing inputs. Nothing stores a grand
    total independently. Enforced by the Rental value object and the ORM
    (which persists inputs only)."""

    FINALIZED_SEGMENT_IMMUTABLE = "finalized_segment_immutable"
    """Once a later segment exists, an earlier segment's range and total
    never change. Enforced by verify_ledger against the pre-mutation
    ledger."""

    TAX_RESIDUAL = "tax_residual"
    """VAT is the rounding residual ttc - ht so that ht + tva == ttc
    exactly. Enforced by rental_engines.tax."""

    ISSUED_INVOICE_IMMUTABLE = "issued_invoice_immutable"
    """Issued invoices are never re-priced; only invoices whose period
    has not started are recomputed. Enforced by the long-term scheduler."""


# All invariants as a frozenset for programmatic checks.
ALL_BILLING_INVARIANTS: frozenset[BillingInvariant] = frozenset(BillingInvariant)
