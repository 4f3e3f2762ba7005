"""
Tests for the Tax Engine.

Covers:
- TTC and HT bases at the default 20% rate
- VAT as the rounding residual (ht + tva == ttc)
- Component-wise sums and pro-rata scaling
- Custom rates and rejected inputs
"""

from decimal import Decimal

import pytest

from rental_engines.tax import (
    VAT_RATE,
    TaxBasis,
    TaxBreakdown,
    TaxBreakdownEngine,
    breakdown,
    scale_breakdown,
    sum_breakdowns,
)
from rental_kernel.exceptions import ValidationError


class TestBreakdown:
    """Tests for single-amount breakdowns."""

    def test_ttc_basis(self):
        result = breakdown(Decimal("1200"), TaxBasis.TTC)

        assert result == TaxBreakdown(
            ht=Decimal("1000.00"), tva=Decimal("200.00"), ttc=Decimal("1200.00")
        )

    def test_ht_basis(self):
        result = breakdown(Decimal("1000"), TaxBasis.HT)

        assert result.ht == Decimal("1000.00")
        assert result.tva == Decimal("200.00")
        assert result.ttc == Decimal("1200.00")

    def test_vat_is_rounding_residual(self):
        result = breakdown(Decimal("100"), TaxBasis.TTC)

        assert result.ht == Decimal("83.33")
        assert result.tva == Decimal("16.67")
        assert result.ht + result.tva == result.ttc

    def test_basis_accepts_string_value(self):
        assert breakdown(Decimal("120"), "TTC").ht == Decimal("100.00")

    def test_default_rate(self):
        assert VAT_RATE == Decimal("0.20")

    def test_custom_rate(self):
        result = breakdown(Decimal("110"), TaxBasis.TTC, vat_rate=Decimal("0.10"))

        assert result.ht == Decimal("100.00")
        assert result.tva == Decimal("10.00")

    def test_zero_amount(self):
        assert breakdown(Decimal("0"), TaxBasis.TTC) == TaxBreakdown.zero()

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            breakdown(Decimal("-1"), TaxBasis.HT)

        assert exc_info.value.reason == "negative_price"
        assert exc_info.value.field == "amount"

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            breakdown(12.5, TaxBasis.TTC)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            TaxBreakdownEngine(Decimal("-0.2"))

    def test_emits_engine_trace(self, captured_logs):
        TaxBreakdownEngine().breakdown(Decimal("500"), TaxBasis.HT)

        traces = [r for r in captured_logs() if r["message"] == "RENTAL_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "tax_breakdown"


class TestCombining:
    """Tests for sums and pro-rata scaling."""

    def test_sum_breakdowns(self):
        total = sum_breakdowns(
            [breakdown(Decimal("1200"), TaxBasis.TTC), breakdown(Decimal("100"), TaxBasis.TTC)]
        )

        assert total.ht == Decimal("1083.33")
        assert total.tva == Decimal("216.67")
        assert total.ttc == Decimal("1300.00")

    def test_empty_sum_is_zero(self):
        assert sum_breakdowns([]) == TaxBreakdown(
            ht=Decimal("0.00"), tva=Decimal("0.00"), ttc=Decimal("0.00")
        )

    def test_scale_pro_rata(self):
        """17 of 30 days of a 1200 TTC month."""
        monthly = breakdown(Decimal("1200"), TaxBasis.TTC)

        result = scale_breakdown(monthly, Decimal(17) / Decimal(30))

        assert result.ttc == Decimal("680.00")
        assert result.ht == Decimal("566.67")
        assert result.tva == Decimal("113.33")

    def test_scale_by_one_is_identity(self):
        monthly = breakdown(Decimal("1200"), TaxBasis.TTC)

        assert scale_breakdown(monthly, Decimal("1")) == monthly

    def test_negative_ratio_rejected(self):
        with pytest.raises(ValidationError):
            scale_breakdown(TaxBreakdown.zero(), Decimal("-0.5"))

    def test_breakdown_is_immutable(self):
        result = breakdown(Decimal("10"), TaxBasis.HT)

        with pytest.raises(AttributeError):
            result.ttc = Decimal("0")
