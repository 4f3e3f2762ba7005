"""
Rental Domain Models (``rental_modules.rentals.models``).

Responsibility
--------------
Frozen dataclass value objects for short-term rentals: the rental itself,
its ordered pricing segments, payments, the completion settlement and the
record of each ledger mutation.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
ledger and lifecycle functions, persisted through ``orm.py``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* A segment's total is a derived property of its pricing inputs and day
  count; a rental's total is the sum of its segments.  Neither is a
  stored field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from functools import cached_property
from uuid import UUID

from rental_engines.segment_pricing import (
    FormulaPricing,
    ManualPricing,
    PricingBasis,
    PricingMode,
    SegmentPrice,
    day_count_between,
    price_segment,
)
from rental_kernel.domain.values import ZERO, sum_money, to_decimal
from rental_kernel.exceptions import ValidationError


class RentalStatus(str, Enum):
    """Rental lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SegmentOrigin(str, Enum):
    """Which operation opened a segment."""

    INITIAL = "initial"
    EXTENSION = "extension"
    VEHICLE_CHANGE = "vehicle_change"


class MutationKind(str, Enum):
    """Ledger operations recorded in the mutation trail."""

    OPEN = "open"
    EXTEND = "extend"
    CHANGE_VEHICLE = "change_vehicle"
    REPRICE = "reprice"


@dataclass(frozen=True)
class PricingSegment:
    """
    One contiguous date range of a rental priced under a single basis.

    ``day_count`` and ``computed_total`` are derived; only the dates, the
    basis, the vehicle and the origin are inputs.
    """

    id: UUID
    rental_id: UUID
    sequence: int
    start_date: date
    end_date: date
    pricing: PricingBasis
    vehicle_id: str | None = None
    origin: SegmentOrigin = SegmentOrigin.INITIAL

    @property
    def day_count(self) -> int:
        return day_count_between(self.start_date, self.end_date)

    @property
    def span_days(self) -> int:
        """Calendar span without the one-day floor."""
        return (self.end_date - self.start_date).days

    @property
    def pricing_mode(self) -> PricingMode:
        return self.pricing.mode

    @cached_property
    def price(self) -> SegmentPrice:
        return price_segment(self.day_count, self.pricing)

    @property
    def computed_total(self) -> Decimal:
        return self.price.total

    @property
    def estimated_per_day(self) -> Decimal | None:
        return self.price.estimated_per_day

    @property
    def price_per_day(self) -> Decimal | None:
        if isinstance(self.pricing, FormulaPricing):
            return self.pricing.price_per_day
        return None

    @property
    def manual_total(self) -> Decimal | None:
        if isinstance(self.pricing, ManualPricing):
            return self.pricing.manual_total
        return None


@dataclass(frozen=True)
class RentalPayment:
    """A payment received against a rental."""

    amount: Decimal
    paid_on: date | None = None
    note: str | None = None


@dataclass(frozen=True)
class Settlement:
    """
    Data captured when a rental is completed.

    Raises:
        ValidationError(invalid_payment_amount): negative final payment.
        ValidationError(invalid_rating): rating outside 1..5.
    """

    final_payment: Decimal = ZERO
    rating: int | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        amount = to_decimal(self.final_payment)
        if amount < ZERO:
            raise ValidationError(
                "invalid_payment_amount", field="final_payment", detail=str(amount)
            )
        object.__setattr__(self, "final_payment", amount)
        if self.rating is not None and (
            isinstance(self.rating, bool) or not 1 <= self.rating <= 5
        ):
            raise ValidationError("invalid_rating", field="rating", detail=str(self.rating))


@dataclass(frozen=True)
class Rental:
    """
    A rental and its segment ledger.

    Segments are ordered by ``sequence``; the last one is the open
    segment.  ``version`` mirrors the optimistic concurrency counter of
    the persisted row.
    """

    id: UUID
    client_id: str
    status: RentalStatus
    segments: tuple[PricingSegment, ...]
    payments: tuple[RentalPayment, ...] = ()
    settlement: Settlement | None = None
    version: int = 0

    @property
    def open_segment(self) -> PricingSegment:
        return self.segments[-1]

    @property
    def start_date(self) -> date:
        return self.segments[0].start_date

    @property
    def end_date(self) -> date:
        return self.segments[-1].end_date

    @property
    def current_vehicle_id(self) -> str | None:
        return self.open_segment.vehicle_id

    @property
    def day_count(self) -> int:
        return sum(s.day_count for s in self.segments)

    @property
    def total_price(self) -> Decimal:
        return sum_money(s.computed_total for s in self.segments)

    @property
    def total_paid(self) -> Decimal:
        return sum_money(p.amount for p in self.payments)

    @property
    def remaining_to_pay(self) -> Decimal:
        return max(self.total_price - self.total_paid, ZERO)


@dataclass(frozen=True)
class LedgerMutation:
    """Result of one ledger operation."""

    rental: Rental
    kind: MutationKind
    old_total: Decimal
    new_total: Decimal
    finalized_segment: PricingSegment | None = None
    created_segment: PricingSegment | None = None

    @property
    def price_delta(self) -> Decimal:
        return self.new_total - self.old_total


@dataclass(frozen=True)
class LedgerMutationRecord:
    """Persisted audit entry for a ledger mutation."""

    id: UUID
    rental_id: UUID
    kind: MutationKind
    old_total: Decimal
    new_total: Decimal
    price_delta: Decimal
    created_segment_id: UUID | None
    finalized_segment_id: UUID | None
    actor_id: UUID


@dataclass(frozen=True)
class RentalSummary:
    """Read model handed to reporting and print collaborators."""

    rental_id: UUID
    client_id: str
    status: RentalStatus
    start_date: date
    end_date: date
    day_count: int
    vehicle_id: str | None
    total_price: Decimal
    total_paid: Decimal
    remaining_to_pay: Decimal
    baseline_total: Decimal
    change_delta: Decimal
    last_extension_delta: Decimal | None
    segment_count: int
    version: int
    currency: str = "MAD"
    segments: tuple[PricingSegment, ...] = field(default=(), repr=False)
