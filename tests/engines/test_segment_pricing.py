"""
Tests for the Segment Pricing Engine.

Covers:
- Formula pricing with per-day and lump discounts
- Discount clamping to the subtotal, and fees
- Manual totals and the estimated per-day figure
- Day counting with the one-day floor
- Catalog band clamping and checks
- Engine trace records
"""

from datetime import date
from decimal import Decimal

import pytest

from rental_engines.segment_pricing import (
    Fee,
    FormulaPricing,
    ManualPricing,
    PricingMode,
    SegmentPricingCalculator,
    check_catalog_band,
    clamp_to_catalog,
    compute_segment_total,
    day_count_between,
    estimated_per_day,
    normalize_day_count,
    price_segment,
)
from rental_engines.tracer import compute_input_fingerprint
from rental_kernel.exceptions import ValidationError


class TestFormulaPricing:
    """Tests for formula segment totals."""

    def test_lump_discount(self):
        """Five days at 300 with a 200 discount bill 1300.00."""
        basis = FormulaPricing(price_per_day=Decimal("300"), discount=Decimal("200"))

        assert compute_segment_total(5, basis) == Decimal("1300.00")

    def test_per_day_discount(self):
        basis = FormulaPricing(
            price_per_day=Decimal("250"),
            discount_per_day=Decimal("25"),
        )

        result = price_segment(4, basis)

        assert result.mode == PricingMode.FORMULA
        assert result.subtotal == Decimal("1000.00")
        assert result.discount_total == Decimal("100.00")
        assert result.total == Decimal("900.00")
        assert result.estimated_per_day is None

    def test_discount_clamped_to_subtotal(self, captured_logs):
        """A discount larger than the subtotal bills zero, never a credit."""
        basis = FormulaPricing(
            price_per_day=Decimal("100"),
            discount_per_day=Decimal("50"),
            discount=Decimal("500"),
        )

        result = price_segment(3, basis)

        assert result.discount_total == Decimal("300.00")
        assert result.total == Decimal("0.00")
        assert any(r["message"] == "segment_discount_clamped" for r in captured_logs())

    def test_fees_added_after_discount(self):
        basis = FormulaPricing(
            price_per_day=Decimal("100"),
            discount=Decimal("1000"),
            fees=(Fee("extension", Decimal("25")), Fee("cleaning", Decimal("10.50"))),
        )

        result = price_segment(3, basis)

        assert result.fees_total == Decimal("35.50")
        assert result.total == Decimal("35.50")

    def test_total_rounded_half_up(self):
        basis = FormulaPricing(price_per_day=Decimal("33.335"))

        assert compute_segment_total(1, basis) == Decimal("33.34")

    def test_zero_days_bill_one_day(self):
        basis = FormulaPricing(price_per_day=Decimal("120"))

        assert compute_segment_total(0, basis) == Decimal("120.00")

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            FormulaPricing(price_per_day=Decimal("-1"))

        assert exc_info.value.reason == "negative_price"
        assert exc_info.value.field == "price_per_day"

    def test_negative_fee_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            Fee("bad", Decimal("-5"))

        assert exc_info.value.field == "fee"

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            FormulaPricing(price_per_day=99.99)

    def test_string_amount_coerced(self):
        basis = FormulaPricing(price_per_day="150")

        assert basis.price_per_day == Decimal("150")

    def test_basis_is_immutable(self):
        basis = FormulaPricing(price_per_day=Decimal("100"))

        with pytest.raises(AttributeError):
            basis.price_per_day = Decimal("200")


class TestManualPricing:
    """Tests for manual segment totals."""

    def test_manual_total_verbatim(self):
        """A 1000 manual total over four days shows 250 per day."""
        result = price_segment(4, ManualPricing(Decimal("1000")))

        assert result.mode == PricingMode.MANUAL
        assert result.total == Decimal("1000.00")
        assert result.estimated_per_day == Decimal("250")

    def test_estimated_per_day_floors(self):
        assert estimated_per_day(Decimal("1000"), 3) == Decimal("333")

    def test_estimated_per_day_one_day_floor(self):
        assert estimated_per_day(Decimal("90"), 0) == Decimal("90")

    def test_negative_manual_total_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            ManualPricing(Decimal("-100"))

        assert exc_info.value.field == "manual_total"


class TestDayCounting:
    """Tests for billable day counts."""

    def test_non_inclusive_difference(self):
        assert day_count_between(date(2024, 3, 1), date(2024, 3, 10)) == 9

    def test_same_day_is_one_day(self):
        assert day_count_between(date(2024, 3, 1), date(2024, 3, 1)) == 1

    def test_crosses_leap_day(self):
        assert day_count_between(date(2024, 2, 28), date(2024, 3, 1)) == 2

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            day_count_between(date(2024, 3, 10), date(2024, 3, 1))

        assert exc_info.value.reason == "negative_days"

    def test_normalize_negative_rejected(self):
        with pytest.raises(ValidationError, match="negative_days"):
            normalize_day_count(-1)

    @pytest.mark.parametrize("days,expected", [(0, 1), (1, 1), (7, 7)])
    def test_normalize_floor(self, days, expected):
        assert normalize_day_count(days) == expected


class TestCalculator:
    """Tests for the calculator class itself."""

    def test_unknown_basis_rejected(self):
        with pytest.raises(TypeError):
            SegmentPricingCalculator().price(3, {"price_per_day": "100"})

    def test_emits_engine_trace(self, captured_logs):
        SegmentPricingCalculator().price(2, FormulaPricing(price_per_day=Decimal("80")))

        traces = [r for r in captured_logs() if r["message"] == "RENTAL_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "segment_pricing"
        assert traces[0]["engine_version"] == "1.0"
        assert len(traces[0]["input_fingerprint"]) == 16

    def test_trace_fingerprint_deterministic(self, captured_logs):
        basis = FormulaPricing(price_per_day=Decimal("80"))
        compute_segment_total(2, basis)
        compute_segment_total(2, FormulaPricing(price_per_day=Decimal("80")))
        compute_segment_total(3, basis)

        fps = [
            r["input_fingerprint"]
            for r in captured_logs()
            if r["message"] == "RENTAL_ENGINE_TRACE"
        ]
        assert fps[0] == fps[1]
        assert fps[0] != fps[2]

    def test_fingerprint_ignores_unlisted_fields(self):
        a = compute_input_fingerprint(("day_count",), {"day_count": 2, "other": 1})
        b = compute_input_fingerprint(("day_count",), {"day_count": 2, "other": 9})

        assert a == b


class TestCatalogBand:
    """Tests for the catalog reference band."""

    @pytest.mark.parametrize(
        "price,expected",
        [
            (Decimal("200"), Decimal("150")),
            (Decimal("40"), Decimal("50")),
            (Decimal("80"), Decimal("80")),
        ],
    )
    def test_clamp_to_catalog(self, price, expected):
        assert clamp_to_catalog(price, Decimal("100")) == expected

    def test_clamp_custom_band(self):
        assert clamp_to_catalog(Decimal("130"), Decimal("100"), Decimal("0.2")) == Decimal("120")

    def test_in_band_accepted(self):
        assert check_catalog_band(Decimal("120"), Decimal("100")) is True

    def test_no_reference_accepted(self):
        assert check_catalog_band(Decimal("9999"), None, enforce=True) is True

    def test_out_of_band_soft_warns(self, captured_logs):
        assert check_catalog_band(Decimal("400"), Decimal("100")) is False

        warnings = [r for r in captured_logs() if r["message"] == "price_out_of_band"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["reference"] == "100"

    def test_out_of_band_enforced_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            check_catalog_band(Decimal("10"), Decimal("100"), enforce=True)

        assert exc_info.value.reason == "price_out_of_band"
        assert exc_info.value.field == "price_per_day"
