"""
Billing policy schema (``rental_config.schema``).

Responsibility
--------------
Frozen dataclass describing the tunable parts of billing: VAT rate,
currency label, overdue windows, catalog band and scheduling defaults.
Structural rules (one-day floor, contiguity, tax residual) are not
configurable and do not appear here.

Invariants enforced
-------------------
* Every instance is validated on construction; bad values raise
  ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class BillingPolicy:
    """Tunable billing parameters.

    Contract: frozen, validated in ``__post_init__``.
    """

    vat_rate: Decimal = Decimal("0.20")
    currency: str = "MAD"
    due_soon_window_days: int = 3
    severe_overdue_days: int = 5
    catalog_price_band: Decimal = Decimal("0.5")
    enforce_catalog_band: bool = False
    default_cycle_days: int = 30
    invoice_lookahead_days: int = 0
    version: str = "1"

    def __post_init__(self) -> None:
        if not isinstance(self.vat_rate, Decimal) or self.vat_rate < 0:
            raise ValueError(f"vat_rate must be a non-negative Decimal, got {self.vat_rate!r}")
        if not self.currency:
            raise ValueError("currency must not be empty")
        if self.due_soon_window_days < 0:
            raise ValueError(
                f"due_soon_window_days must be >= 0, got {self.due_soon_window_days}"
            )
        if self.severe_overdue_days < 1:
            raise ValueError(
                f"severe_overdue_days must be >= 1, got {self.severe_overdue_days}"
            )
        if not isinstance(self.catalog_price_band, Decimal) or not (
            0 <= self.catalog_price_band <= 1
        ):
            raise ValueError(
                f"catalog_price_band must be a Decimal in [0, 1], got {self.catalog_price_band!r}"
            )
        if self.default_cycle_days < 1:
            raise ValueError(f"default_cycle_days must be >= 1, got {self.default_cycle_days}")
        if self.invoice_lookahead_days < 0:
            raise ValueError(
                f"invoice_lookahead_days must be >= 0, got {self.invoice_lookahead_days}"
            )
