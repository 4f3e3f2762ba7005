"""
Segment Pricing Engine - total of one pricing segment.

A rental is billed as a sequence of segments.  Each segment carries its own
pricing basis, a tagged variant with one payload shape per mode:

    FormulaPricing(price_per_day, discount_per_day, discount, fees)
        subtotal       = day_count * price_per_day
        discount_total = min(day_count * discount_per_day + discount, subtotal)
        total          = max(subtotal - discount_total, 0) + sum(fees)

    ManualPricing(manual_total)
        total             = manual_total, verbatim
        estimated_per_day = floor(manual_total / day_count)   (display only)

Totals are rounded half-up to two decimals.  Day counts are the
non-inclusive difference between start and end dates with a floor of one
day, so a same-day rental still bills a day.

Pure functions with no I/O.  Dates are passed in; nothing here reads the
clock.

Usage:
    from decimal import Decimal
    from rental_engines.segment_pricing import FormulaPricing, compute_segment_total

    total = compute_segment_total(
        5, FormulaPricing(price_per_day=Decimal("300"), discount=Decimal("200"))
    )
    # Decimal("1300.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from rental_engines.tracer import traced_engine
from rental_kernel.domain.values import ZERO, floor_whole, round_money, sum_money, to_decimal
from rental_kernel.exceptions import ValidationError
from rental_kernel.logging_config import get_logger

logger = get_logger("engines.segment_pricing")

DEFAULT_CATALOG_BAND = Decimal("0.5")


class PricingMode(str, Enum):
    """Which payload shape a segment is priced with."""

    FORMULA = "formula"
    MANUAL = "manual"


def _non_negative(value, field: str) -> Decimal:
    amount = to_decimal(value)
    if amount < ZERO:
        raise ValidationError("negative_price", field=field, detail=str(amount))
    return amount


@dataclass(frozen=True)
class Fee:
    """One-off charge attached to a formula segment (e.g. extension fee)."""

    label: str
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _non_negative(self.amount, "fee"))


@dataclass(frozen=True)
class FormulaPricing:
    """
    Per-day pricing with optional per-day and lump discounts.

    Immutable value object.  Amounts are coerced to Decimal and rejected
    when negative.
    """

    price_per_day: Decimal
    discount_per_day: Decimal = ZERO
    discount: Decimal = ZERO
    fees: tuple[Fee, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "price_per_day", _non_negative(self.price_per_day, "price_per_day"))
        object.__setattr__(
            self, "discount_per_day", _non_negative(self.discount_per_day, "discount_per_day")
        )
        object.__setattr__(self, "discount", _non_negative(self.discount, "discount"))
        object.__setattr__(self, "fees", tuple(self.fees))

    @property
    def mode(self) -> PricingMode:
        return PricingMode.FORMULA

    @property
    def fees_total(self) -> Decimal:
        return sum_money(f.amount for f in self.fees)


@dataclass(frozen=True)
class ManualPricing:
    """
    Operator-stated total for the whole segment.

    A segment cut short by a vehicle change keeps the total and day count
    it was agreed at in ``agreed_total`` and ``agreed_days``.  They are
    reporting inputs only and never change what is billed.
    """

    manual_total: Decimal
    agreed_total: Decimal | None = None
    agreed_days: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "manual_total", _non_negative(self.manual_total, "manual_total"))
        if (self.agreed_total is None) != (self.agreed_days is None):
            raise ValidationError(
                "incomplete_agreed_terms",
                field="agreed_days",
                detail="agreed_total and agreed_days are set together",
            )
        if self.agreed_total is not None:
            object.__setattr__(
                self, "agreed_total", _non_negative(self.agreed_total, "agreed_total")
            )
            if self.agreed_days < 1:
                raise ValidationError(
                    "negative_days", field="agreed_days", detail=str(self.agreed_days)
                )

    @property
    def mode(self) -> PricingMode:
        return PricingMode.MANUAL


PricingBasis = FormulaPricing | ManualPricing


@dataclass(frozen=True)
class SegmentPrice:
    """
    Calculated price of one segment.

    ``estimated_per_day`` is set for manual segments only.
    """

    day_count: int
    mode: PricingMode
    subtotal: Decimal
    discount_total: Decimal
    fees_total: Decimal
    total: Decimal
    estimated_per_day: Decimal | None = None


# ---------------------------------------------------------------------------
# Day counting
# ---------------------------------------------------------------------------


def normalize_day_count(day_count: int) -> int:
    """Apply the one-day floor.  Negative counts are rejected."""
    if day_count < 0:
        raise ValidationError("negative_days", field="day_count", detail=str(day_count))
    return max(1, day_count)


def day_count_between(start_date: date, end_date: date) -> int:
    """
    Billable days between two dates.

    Non-inclusive difference floored to whole days, never below one.

    Raises:
        ValidationError(negative_days): If end_date is before start_date.
    """
    if end_date < start_date:
        raise ValidationError(
            "negative_days",
            field="end_date",
            detail=f"{end_date.isoformat()} is before {start_date.isoformat()}",
        )
    return max(1, (end_date - start_date).days)


def estimated_per_day(manual_total: Decimal, day_count: int) -> Decimal:
    """Whole-unit per-day figure shown next to a manual total."""
    days = normalize_day_count(day_count)
    return floor_whole(to_decimal(manual_total) / days)


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------


class SegmentPricingCalculator:
    """
    Compute the total of a pricing segment.

    Pure functions - no I/O, no database access.

    Handles:
        - Formula pricing with per-day and lump discounts, clamped to the
          subtotal, plus fees
        - Manual totals taken verbatim
    """

    @traced_engine("segment_pricing", "1.0", fingerprint_fields=("day_count", "basis"))
    def price(self, day_count: int, basis: PricingBasis) -> SegmentPrice:
        """
        Price ``day_count`` days under ``basis``.

        Args:
            day_count: Billable days; 0 is lifted to 1.
            basis: FormulaPricing or ManualPricing.

        Returns:
            SegmentPrice with the rounded total.

        Raises:
            ValidationError(negative_days): If day_count is negative.
        """
        days = normalize_day_count(day_count)

        if isinstance(basis, ManualPricing):
            total = round_money(basis.manual_total)
            return SegmentPrice(
                day_count=days,
                mode=PricingMode.MANUAL,
                subtotal=total,
                discount_total=ZERO,
                fees_total=ZERO,
                total=total,
                estimated_per_day=estimated_per_day(basis.manual_total, days),
            )

        if not isinstance(basis, FormulaPricing):
            raise TypeError(f"Unsupported pricing basis: {type(basis).__name__}")

        subtotal = days * basis.price_per_day
        requested_discount = days * basis.discount_per_day + basis.discount
        discount_total = min(requested_discount, subtotal)
        if requested_discount > subtotal:
            logger.debug(
                "segment_discount_clamped",
                extra={
                    "requested_discount": str(requested_discount),
                    "subtotal": str(subtotal),
                },
            )
        fees_total = basis.fees_total
        total = max(subtotal - discount_total, ZERO) + fees_total

        return SegmentPrice(
            day_count=days,
            mode=PricingMode.FORMULA,
            subtotal=round_money(subtotal),
            discount_total=round_money(discount_total),
            fees_total=round_money(fees_total),
            total=round_money(total),
        )


_calculator = SegmentPricingCalculator()


def compute_segment_total(day_count: int, basis: PricingBasis) -> Decimal:
    """Convenience wrapper returning only the rounded total."""
    return _calculator.price(day_count, basis).total


def price_segment(day_count: int, basis: PricingBasis) -> SegmentPrice:
    """Convenience wrapper returning the full SegmentPrice."""
    return _calculator.price(day_count, basis)


# ---------------------------------------------------------------------------
# Catalog band
# ---------------------------------------------------------------------------


def clamp_to_catalog(
    price: Decimal,
    reference: Decimal,
    band: Decimal = DEFAULT_CATALOG_BAND,
) -> Decimal:
    """Clamp ``price`` into ``[reference*(1-band), reference*(1+band)]``."""
    price = to_decimal(price)
    reference = to_decimal(reference)
    band = to_decimal(band)
    low = reference * (1 - band)
    high = reference * (1 + band)
    return min(max(price, low), high)


def check_catalog_band(
    price: Decimal,
    reference: Decimal | None,
    band: Decimal = DEFAULT_CATALOG_BAND,
    enforce: bool = False,
) -> bool:
    """
    Check a per-day price against the catalog reference.

    Returns True when the price is inside the band (or there is no
    reference).  Outside the band, logs a warning, or raises when
    ``enforce`` is set.

    Raises:
        ValidationError(price_out_of_band): If enforce and out of band.
    """
    if reference is None:
        return True
    price = to_decimal(price)
    if clamp_to_catalog(price, reference, band) == price:
        return True

    if enforce:
        logger.warning(
            "price_out_of_band_rejected",
            extra={"price": str(price), "reference": str(reference), "band": str(band)},
        )
        raise ValidationError(
            "price_out_of_band",
            field="price_per_day",
            detail=f"{price} outside {band} band around {reference}",
        )

    logger.warning(
        "price_out_of_band",
        extra={"price": str(price), "reference": str(reference), "band": str(band)},
    )
    return False
