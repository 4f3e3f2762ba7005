"""
Module: rental_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.  This is
    the canonical import surface for rental_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rental_kernel (domain values, exceptions, logging).
    MUST NOT import rental_modules or rental_config.

Invariants enforced:
    - Purity: engines never read the clock; dates are parameters.
    - Decimal-only arithmetic: floats are rejected at the boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``
    (see ``rental_engines.tracer``), emitting RENTAL_ENGINE_TRACE records.
"""

from rental_engines.segment_pricing import (
    DEFAULT_CATALOG_BAND,
    Fee,
    FormulaPricing,
    ManualPricing,
    PricingBasis,
    PricingMode,
    SegmentPrice,
    SegmentPricingCalculator,
    check_catalog_band,
    clamp_to_catalog,
    compute_segment_total,
    day_count_between,
    estimated_per_day,
    normalize_day_count,
    price_segment,
)
from rental_engines.tax import (
    VAT_RATE,
    TaxBasis,
    TaxBreakdown,
    TaxBreakdownEngine,
    breakdown,
    scale_breakdown,
    sum_breakdowns,
)
from rental_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DEFAULT_CATALOG_BAND",
    "Fee",
    "FormulaPricing",
    "ManualPricing",
    "PricingBasis",
    "PricingMode",
    "SegmentPrice",
    "SegmentPricingCalculator",
    "check_catalog_band",
    "clamp_to_catalog",
    "compute_segment_total",
    "day_count_between",
    "estimated_per_day",
    "normalize_day_count",
    "price_segment",
    "VAT_RATE",
    "TaxBasis",
    "TaxBreakdown",
    "TaxBreakdownEngine",
    "breakdown",
    "scale_breakdown",
    "sum_breakdowns",
    "compute_input_fingerprint",
    "traced_engine",
]
