"""
Tax Engine - HT / TVA / TTC breakdown at a single fixed VAT rate.

An amount is stated either excluding tax (HT) or including tax (TTC).  The
engine derives the other side and reports VAT as the rounding residual:

    basis TTC:  ttc = amount,        ht  = amount / (1 + rate)
    basis HT:   ht  = amount,        ttc = amount * (1 + rate)
    tva = round(ttc) - round(ht)

so ``ht + tva == ttc`` holds exactly on the rounded figures.

Pure functions with no I/O - the rate is a parameter defaulting to 20%.

Usage:
    from decimal import Decimal
    from rental_engines.tax import TaxBasis, breakdown

    result = breakdown(Decimal("1200"), TaxBasis.TTC)
    print(result.ht, result.tva, result.ttc)  # 1000.00 200.00 1200.00
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from rental_engines.tracer import traced_engine
from rental_kernel.domain.values import ZERO, round_money, to_decimal
from rental_kernel.exceptions import ValidationError
from rental_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

VAT_RATE = Decimal("0.20")


class TaxBasis(str, Enum):
    """Whether a stated amount excludes (HT) or includes (TTC) VAT."""

    HT = "HT"
    TTC = "TTC"


@dataclass(frozen=True)
class TaxBreakdown:
    """
    Rounded HT / TVA / TTC triple.

    Immutable value object.  Breakdowns add component-wise.
    """

    ht: Decimal
    tva: Decimal
    ttc: Decimal

    def __add__(self, other: TaxBreakdown) -> TaxBreakdown:
        if not isinstance(other, TaxBreakdown):
            return NotImplemented
        return TaxBreakdown(
            ht=self.ht + other.ht,
            tva=self.tva + other.tva,
            ttc=self.ttc + other.ttc,
        )

    @classmethod
    def zero(cls) -> TaxBreakdown:
        return cls(ht=round_money(ZERO), tva=round_money(ZERO), ttc=round_money(ZERO))


class TaxBreakdownEngine:
    """
    Convert an amount and its stated basis into HT / TVA / TTC.

    Pure functions - no I/O.  Never raises for a valid non-negative
    Decimal amount.
    """

    def __init__(self, vat_rate: Decimal = VAT_RATE):
        rate = to_decimal(vat_rate)
        if rate < ZERO:
            raise ValueError("VAT rate cannot be negative")
        self.vat_rate = rate

    @traced_engine("tax_breakdown", "1.0", fingerprint_fields=("amount", "basis"))
    def breakdown(self, amount: Decimal, basis: TaxBasis) -> TaxBreakdown:
        """
        Break ``amount`` down into HT / TVA / TTC.

        Raises:
            ValidationError(negative_price): If amount is negative.
        """
        amount = to_decimal(amount)
        if amount < ZERO:
            raise ValidationError("negative_price", field="amount", detail=str(amount))

        factor = 1 + self.vat_rate
        basis = TaxBasis(basis)
        if basis is TaxBasis.TTC:
            ttc = round_money(amount)
            ht = round_money(amount / factor)
        else:
            ht = round_money(amount)
            ttc = round_money(amount * factor)

        return TaxBreakdown(ht=ht, tva=ttc - ht, ttc=ttc)


_engine = TaxBreakdownEngine()


def breakdown(
    amount: Decimal,
    basis: TaxBasis,
    vat_rate: Decimal | None = None,
) -> TaxBreakdown:
    """Break an amount down at ``vat_rate`` (default 20%)."""
    engine = _engine if vat_rate is None else TaxBreakdownEngine(vat_rate)
    return engine.breakdown(amount, basis)


def sum_breakdowns(breakdowns: Iterable[TaxBreakdown]) -> TaxBreakdown:
    """Component-wise sum; the empty sum is zero."""
    total = TaxBreakdown.zero()
    for b in breakdowns:
        total = total + b
    return total


def scale_breakdown(
    value: TaxBreakdown,
    ratio: Decimal,
    vat_rate: Decimal | None = None,
) -> TaxBreakdown:
    """Scale by ``ratio`` (e.g. a pro-rata fraction), re-deriving from TTC."""
    ratio = to_decimal(ratio)
    if ratio < ZERO:
        raise ValidationError("negative_price", field="ratio", detail=str(ratio))
    return breakdown(value.ttc * ratio, TaxBasis.TTC, vat_rate)
