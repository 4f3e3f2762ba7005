"""
Rental Segment Ledger (``rental_modules.rentals.ledger``).

Responsibility
--------------
Pure operations over a rental's ordered pricing segments: opening the
ledger, appending an extension, splitting at a vehicle change and
repricing the open segment.  Every operation returns a ``LedgerMutation``
carrying the new rental value and the old/new totals.

Architecture position
---------------------
**Modules layer** -- pure functional core, ZERO I/O.  The lifecycle state
machine decides *whether* an operation may run; this module decides
*what* it does.

Invariants enforced
-------------------
* ``segment_contiguity`` -- each segment starts where the previous ends.
* ``day_count_sum`` -- segment day counts add up to the rental duration
  (non-inclusive span, plus one for each zero-span segment lifted by the
  one-day floor).
* ``finalized_segment_immutable`` -- a segment followed by another never
  changes range or total.
* ``derived_total`` -- totals are recomputed from segment inputs.

``verify_ledger`` checks these after every operation and before the new
rental value is returned, so a broken ledger never reaches persistence.

Failure modes
-------------
* ``ValidationError`` for bad operation input (raised before any new
  value is built).
* ``LedgerInvariantError`` if a computed ledger fails verification.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from rental_engines.segment_pricing import (
    FormulaPricing,
    ManualPricing,
    PricingBasis,
    compute_segment_total,
    day_count_between,
)
from rental_kernel.domain.values import ZERO, round_money, to_decimal
from rental_kernel.exceptions import LedgerInvariantError, ValidationError
from rental_kernel.invariants import BillingInvariant
from rental_kernel.logging_config import get_logger
from rental_modules.rentals.models import (
    LedgerMutation,
    MutationKind,
    PricingSegment,
    Rental,
    RentalPayment,
    RentalStatus,
    SegmentOrigin,
)

logger = get_logger("modules.rentals.ledger")


# =========================================================================
# Verification
# =========================================================================


def verify_ledger(rental: Rental, previous: Rental | None = None) -> None:
    """
    Check the structural invariants of ``rental``.

    When ``previous`` is given, segments that were already finalized in
    it (every segment but its last) must be unchanged.

    Raises:
        LedgerInvariantError: naming the first broken invariant.
    """
    rental_id = str(rental.id)
    segments = rental.segments

    if not segments:
        raise LedgerInvariantError(
            rental_id, BillingInvariant.SEGMENT_CONTIGUITY.value, "rental has no segments"
        )

    for index, seg in enumerate(segments):
        if seg.sequence != index:
            raise LedgerInvariantError(
                rental_id,
                BillingInvariant.SEGMENT_CONTIGUITY.value,
                f"segment at position {index} has sequence {seg.sequence}",
            )
        if seg.end_date < seg.start_date:
            raise LedgerInvariantError(
                rental_id,
                BillingInvariant.SEGMENT_CONTIGUITY.value,
                f"segment {seg.sequence} ends before it starts",
            )
        if index and seg.start_date != segments[index - 1].end_date:
            raise LedgerInvariantError(
                rental_id,
                BillingInvariant.SEGMENT_CONTIGUITY.value,
                f"segment {seg.sequence} starts {seg.start_date.isoformat()}, "
                f"previous ends {segments[index - 1].end_date.isoformat()}",
            )

    span = (rental.end_date - rental.start_date).days
    lifted = sum(1 for s in segments if s.span_days == 0)
    if rental.day_count != span + lifted:
        raise LedgerInvariantError(
            rental_id,
            BillingInvariant.DAY_COUNT_SUM.value,
            f"segments bill {rental.day_count} days for a span of {span} "
            f"with {lifted} same-day segment(s)",
        )

    if previous is not None:
        for before in previous.segments[:-1]:
            if before.sequence >= len(segments):
                raise LedgerInvariantError(
                    rental_id,
                    BillingInvariant.FINALIZED_SEGMENT_IMMUTABLE.value,
                    f"finalized segment {before.sequence} was removed",
                )
            after = segments[before.sequence]
            if (
                after.id != before.id
                or after.start_date != before.start_date
                or after.end_date != before.end_date
                or after.computed_total != before.computed_total
            ):
                raise LedgerInvariantError(
                    rental_id,
                    BillingInvariant.FINALIZED_SEGMENT_IMMUTABLE.value,
                    f"finalized segment {before.sequence} changed",
                )


# =========================================================================
# Operations
# =========================================================================


def open_ledger(
    rental_id: UUID,
    client_id: str,
    start_date: date,
    end_date: date,
    pricing_basis: PricingBasis,
    vehicle_id: str | None = None,
) -> LedgerMutation:
    """
    Create a pending rental with a single ``initial`` segment.

    Raises:
        ValidationError(negative_days): If end_date is before start_date.
    """
    day_count_between(start_date, end_date)
    segment = PricingSegment(
        id=uuid4(),
        rental_id=rental_id,
        sequence=0,
        start_date=start_date,
        end_date=end_date,
        pricing=pricing_basis,
        vehicle_id=vehicle_id or None,
        origin=SegmentOrigin.INITIAL,
    )
    rental = Rental(
        id=rental_id,
        client_id=client_id,
        status=RentalStatus.PENDING,
        segments=(segment,),
    )
    verify_ledger(rental)
    return LedgerMutation(
        rental=rental,
        kind=MutationKind.OPEN,
        old_total=ZERO,
        new_total=rental.total_price,
        created_segment=segment,
    )


def append_extension(
    rental: Rental,
    new_end_date: date,
    pricing_basis: PricingBasis,
) -> LedgerMutation:
    """
    Extend the rental with a new segment priced independently.

    The segment runs from the current end date to ``new_end_date`` under
    the current vehicle.  Prior segments are untouched.

    Raises:
        ValidationError(new_end_date_not_after_current_end)
    """
    if new_end_date <= rental.end_date:
        raise ValidationError(
            "new_end_date_not_after_current_end",
            field="new_end_date",
            detail=f"{new_end_date.isoformat()} <= {rental.end_date.isoformat()}",
        )

    segment = PricingSegment(
        id=uuid4(),
        rental_id=rental.id,
        sequence=len(rental.segments),
        start_date=rental.end_date,
        end_date=new_end_date,
        pricing=pricing_basis,
        vehicle_id=rental.current_vehicle_id,
        origin=SegmentOrigin.EXTENSION,
    )
    updated = replace(rental, segments=rental.segments + (segment,))
    verify_ledger(updated, previous=rental)

    return LedgerMutation(
        rental=updated,
        kind=MutationKind.EXTEND,
        old_total=rental.total_price,
        new_total=updated.total_price,
        finalized_segment=rental.open_segment,
        created_segment=segment,
    )


def grand_total_extension_basis(rental: Rental, grand_total: Decimal) -> ManualPricing:
    """Manual basis making the rental total reach ``grand_total`` (never negative)."""
    target = to_decimal(grand_total)
    if target < ZERO:
        raise ValidationError("negative_price", field="grand_total", detail=str(target))
    return ManualPricing(manual_total=max(target - rental.total_price, ZERO))


def truncate_basis(basis: PricingBasis, original_days: int, kept_days: int) -> PricingBasis:
    """
    Basis of a segment cut down from ``original_days`` to ``kept_days``.

    Formula terms are per day and carry over unchanged (the lump discount
    is clamped by the calculator, fees stay).  A manual total is prorated
    by day count and the agreed total and day count are kept on the
    result.
    """
    if isinstance(basis, ManualPricing):
        prorated = basis.manual_total * Decimal(kept_days) / Decimal(original_days)
        return ManualPricing(
            manual_total=round_money(prorated),
            agreed_total=basis.manual_total,
            agreed_days=original_days,
        )
    return basis


def split_at_change(
    rental: Rental,
    change_date: date,
    new_pricing_basis: PricingBasis,
    new_vehicle_id: str,
) -> LedgerMutation:
    """
    Finalize the open segment at ``change_date`` and open a
    ``vehicle_change`` segment to the existing end date.

    Raises:
        ValidationError(vehicle_required): empty ``new_vehicle_id``.
        ValidationError(same_vehicle): vehicle is already on the rental.
        ValidationError(change_date_out_of_range): change_date not strictly
            inside the open segment.
    """
    if not new_vehicle_id:
        raise ValidationError("vehicle_required", field="new_vehicle_id")
    if new_vehicle_id == rental.current_vehicle_id:
        raise ValidationError("same_vehicle", field="new_vehicle_id", detail=new_vehicle_id)

    current = rental.open_segment
    if not current.start_date < change_date < current.end_date:
        raise ValidationError(
            "change_date_out_of_range",
            field="change_date",
            detail=(
                f"{change_date.isoformat()} not inside "
                f"{current.start_date.isoformat()}..{current.end_date.isoformat()}"
            ),
        )

    kept_days = day_count_between(current.start_date, change_date)
    finalized = replace(
        current,
        end_date=change_date,
        pricing=truncate_basis(current.pricing, current.day_count, kept_days),
    )
    created = PricingSegment(
        id=uuid4(),
        rental_id=rental.id,
        sequence=current.sequence + 1,
        start_date=change_date,
        end_date=current.end_date,
        pricing=new_pricing_basis,
        vehicle_id=new_vehicle_id,
        origin=SegmentOrigin.VEHICLE_CHANGE,
    )
    updated = replace(rental, segments=rental.segments[:-1] + (finalized, created))
    verify_ledger(updated, previous=rental)

    return LedgerMutation(
        rental=updated,
        kind=MutationKind.CHANGE_VEHICLE,
        old_total=rental.total_price,
        new_total=updated.total_price,
        finalized_segment=finalized,
        created_segment=created,
    )


def reprice_open_segment(rental: Rental, pricing_basis: PricingBasis) -> LedgerMutation:
    """Replace the pricing basis of the open segment; its range is unchanged."""
    current = rental.open_segment
    repriced = replace(current, pricing=pricing_basis)
    updated = replace(rental, segments=rental.segments[:-1] + (repriced,))
    verify_ledger(updated, previous=rental)

    return LedgerMutation(
        rental=updated,
        kind=MutationKind.REPRICE,
        old_total=rental.total_price,
        new_total=updated.total_price,
    )


def assign_vehicle(rental: Rental, vehicle_id: str) -> Rental:
    """Set the vehicle of the open segment."""
    repriced = replace(rental.open_segment, vehicle_id=vehicle_id)
    return replace(rental, segments=rental.segments[:-1] + (repriced,))


# =========================================================================
# Reporting
# =========================================================================


def baseline_total(rental: Rental) -> Decimal:
    """
    Total had the first segment's terms applied over the whole rental.

    Manual first segments are prorated per billed day from the terms they
    were agreed at, before any vehicle change cut them short.  Reporting
    only.
    """
    first = rental.segments[0]
    days = rental.day_count
    pricing = first.pricing
    if isinstance(pricing, FormulaPricing):
        return compute_segment_total(days, pricing)
    if pricing.agreed_total is not None:
        prorated = pricing.agreed_total * Decimal(days) / Decimal(pricing.agreed_days)
    else:
        prorated = pricing.manual_total * Decimal(days) / Decimal(first.day_count)
    return round_money(prorated)


def change_delta(rental: Rental) -> Decimal:
    """Gain (positive) or loss against ``baseline_total``."""
    return rental.total_price - baseline_total(rental)


def last_extension_delta(rental: Rental) -> Decimal | None:
    """Price added by the most recent extension, if the rental was extended."""
    for seg in reversed(rental.segments):
        if seg.origin is SegmentOrigin.EXTENSION:
            return seg.computed_total
    return None


# =========================================================================
# Payments
# =========================================================================


def record_rental_payment(
    rental: Rental,
    amount: Decimal,
    paid_on: date | None = None,
    note: str | None = None,
) -> Rental:
    """
    Append a payment.

    Raises:
        ValidationError(invalid_payment_amount): amount is not positive.
    """
    value = to_decimal(amount)
    if value <= ZERO:
        raise ValidationError("invalid_payment_amount", field="amount", detail=str(value))
    payment = RentalPayment(amount=value, paid_on=paid_on, note=note)
    return replace(rental, payments=rental.payments + (payment,))
