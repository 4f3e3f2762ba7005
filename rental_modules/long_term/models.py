"""
Long-Term Contract Domain Models (``rental_modules.long_term.models``).

Responsibility
--------------
Frozen dataclass value objects for lease contracts billed on a payment
cycle: the contract, its vehicles, issued invoices with per-vehicle
lines, payments and the statement read model.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* An invoice's ``amount_due`` is fixed when it is issued.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from rental_engines.tax import TaxBasis, TaxBreakdown
from rental_kernel.domain.values import ZERO, sum_money
from rental_kernel.exceptions import ValidationError


class PaymentCycle(int, Enum):
    """Named payment cycles.  Any positive day count is also accepted."""

    TEN_DAYS = 10
    FIFTEEN_DAYS = 15
    MONTHLY = 30

    @classmethod
    def resolve(cls, value: int | str) -> int:
        """
        Cycle length in days from a name (``monthly``, ``15_days``,
        ``10_days``) or a positive integer.

        Raises:
            ValidationError(invalid_cycle_days)
        """
        if isinstance(value, cls):
            return value.value
        if isinstance(value, str):
            named = {
                "monthly": cls.MONTHLY,
                "15_days": cls.FIFTEEN_DAYS,
                "10_days": cls.TEN_DAYS,
            }
            if value in named:
                return named[value].value
            if not value.isdigit():
                raise ValidationError("invalid_cycle_days", field="payment_cycle", detail=value)
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(
                "invalid_cycle_days", field="payment_cycle", detail=str(value)
            )
        return value


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class OverdueStatus(str, Enum):
    """Payment health of a contract, recomputed on every read."""

    ON_TIME = "on_time"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"


class InvoiceSeverity(str, Enum):
    """Per-invoice display classification."""

    PAID = "paid"
    SEVERELY_OVERDUE = "severely_overdue"
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    ON_TIME = "on_time"


@dataclass(frozen=True)
class ContractVehicle:
    """
    A vehicle on a contract during ``[active_from, active_to)``.

    ``monthly_price`` is stated on ``price_input_type`` (HT or TTC).
    """

    id: UUID
    vehicle_id: str
    monthly_price: Decimal
    price_input_type: TaxBasis
    active_from: date
    active_to: date | None = None

    def overlaps(self, period_start: date, period_end: date) -> bool:
        """True if the vehicle is on the contract for any day of the period."""
        if self.active_to is not None and self.active_to <= self.active_from:
            return False
        if self.active_from >= period_end:
            return False
        return self.active_to is None or self.active_to > period_start

    def is_active_on(self, day: date) -> bool:
        return self.active_from <= day and (self.active_to is None or day < self.active_to)


@dataclass(frozen=True)
class InvoiceLine:
    """Share of one vehicle in an invoice."""

    vehicle_id: str
    amount: TaxBreakdown


@dataclass(frozen=True)
class Invoice:
    """An issued invoice for one payment cycle."""

    id: UUID
    contract_id: UUID
    cycle_index: int
    period_start: date
    period_end: date
    due_date: date
    amount_due: TaxBreakdown
    lines: tuple[InvoiceLine, ...] = ()
    status: InvoiceStatus = InvoiceStatus.PENDING
    amount_paid: Decimal = ZERO
    is_prorated: bool = False
    paid_on: date | None = None

    @property
    def outstanding(self) -> Decimal:
        return max(self.amount_due.ttc - self.amount_paid, ZERO)

    @property
    def is_paid(self) -> bool:
        return self.status is InvoiceStatus.PAID


@dataclass(frozen=True)
class ContractPayment:
    """A payment received on a contract."""

    id: UUID
    amount: Decimal
    paid_on: date
    invoice_id: UUID | None = None


@dataclass(frozen=True)
class LongTermContract:
    """
    A long-term lease contract.

    ``invoices`` are ordered by ``cycle_index``.  ``closed_on`` is the
    exclusive end of billing once the contract is closed.
    """

    id: UUID
    client_id: str
    start_date: date
    payment_cycle_days: int
    pro_rata_first_month: bool = False
    vehicles: tuple[ContractVehicle, ...] = ()
    invoices: tuple[Invoice, ...] = ()
    payments: tuple[ContractPayment, ...] = ()
    credit_balance: Decimal = ZERO
    closed_on: date | None = None
    version: int = 0

    @property
    def is_closed(self) -> bool:
        return self.closed_on is not None

    @property
    def pending_invoices(self) -> tuple[Invoice, ...]:
        return tuple(i for i in self.invoices if i.status is InvoiceStatus.PENDING)

    @property
    def next_cycle_index(self) -> int:
        if not self.invoices:
            return 0
        return max(i.cycle_index for i in self.invoices) + 1

    @property
    def total_invoiced(self) -> Decimal:
        return sum_money(i.amount_due.ttc for i in self.invoices)

    @property
    def total_paid(self) -> Decimal:
        return sum_money(p.amount for p in self.payments)

    def active_vehicles(self, on: date) -> tuple[ContractVehicle, ...]:
        return tuple(v for v in self.vehicles if v.is_active_on(on))

    def find_invoice(self, invoice_id: UUID) -> Invoice | None:
        for invoice in self.invoices:
            if invoice.id == invoice_id:
                return invoice
        return None


@dataclass(frozen=True)
class PaymentAllocation:
    """How a payment was spread over invoices."""

    contract: LongTermContract
    payment: ContractPayment
    applied: tuple[tuple[UUID, Decimal], ...]
    credit_added: Decimal


@dataclass(frozen=True)
class ContractStatement:
    """Read model handed to reporting and print collaborators."""

    contract_id: UUID
    client_id: str
    as_of: date
    next_due_date: date | None
    overdue_status: OverdueStatus
    monthly_total: TaxBreakdown
    total_invoiced: Decimal
    total_paid: Decimal
    remaining_to_pay: Decimal
    credit_balance: Decimal
    pending_invoice_count: int
    invoices: tuple[tuple[Invoice, InvoiceSeverity], ...] = ()
    closed_on: date | None = None
    currency: str = "MAD"
