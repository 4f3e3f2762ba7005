"""
Long-Term Contract Scheduler (``rental_modules.long_term.scheduler``).

Responsibility
--------------
Pure scheduling and collection logic for lease contracts: cycle periods,
first-month proration, invoice issuance, payment allocation, due dates
and overdue classification.

Architecture position
---------------------
**Modules layer** -- pure functional core, ZERO I/O.  Takes ``today`` and
``as_of`` explicitly; never reads the clock.  Uses the tax engine for
every HT / TVA / TTC figure.

Schedule
--------
Cycle ``k`` covers ``[start + k*cycle, start + (k+1)*cycle)`` and is due
at its period end.  With ``pro_rata_first_month`` and a start that is
not the 1st, cycle 0 ends at the earlier of the next 1st-of-month and a
full cycle and bills ``monthly_total * days / cycle_days``; later cycles
follow on at full length.  Once a contract is closed, the cycle that
contains the closing date is cut short and prorated the same way, and no
cycle starts on or after it.

A vehicle is billed at its full cycle price for every cycle whose period
overlaps its active range ``[active_from, active_to)``; only the
contract-level start and end prorate.

Invariants enforced
-------------------
* ``issued_invoice_immutable`` -- invoices whose period has started are
  never re-priced.  ``recompute_future_invoices`` only touches pending
  invoices whose period starts after ``today``.
* Issuance is idempotent by cycle index.
* ``tax_residual`` -- amounts come from ``rental_engines.tax``.

Failure modes
-------------
* ``ValidationError`` for bad amounts, dates or vehicles.
* ``InvoiceNotFoundError`` / ``VehicleNotOnContractError`` for unknown
  references.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from rental_engines.tax import (
    VAT_RATE,
    TaxBasis,
    TaxBreakdown,
    breakdown,
    scale_breakdown,
    sum_breakdowns,
)
from rental_kernel.domain.values import ZERO, to_decimal
from rental_kernel.exceptions import (
    InvoiceNotFoundError,
    ValidationError,
    VehicleNotOnContractError,
)
from rental_kernel.logging_config import get_logger
from rental_modules.long_term.models import (
    ContractPayment,
    ContractStatement,
    ContractVehicle,
    Invoice,
    InvoiceLine,
    InvoiceSeverity,
    InvoiceStatus,
    LongTermContract,
    OverdueStatus,
    PaymentAllocation,
)

logger = get_logger("modules.long_term.scheduler")

DEFAULT_DUE_SOON_WINDOW_DAYS = 3
DEFAULT_SEVERE_OVERDUE_DAYS = 5


@dataclass(frozen=True)
class CyclePeriod:
    """Billing period of one cycle."""

    index: int
    start: date
    end: date
    cycle_days: int
    is_prorated: bool

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    @property
    def ratio(self) -> Decimal:
        return Decimal(self.days) / Decimal(self.cycle_days)


def first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


# =========================================================================
# Periods and amounts
# =========================================================================


def cycle_period(contract: LongTermContract, index: int) -> CyclePeriod | None:
    """Period of cycle ``index``, or None if the closed contract has no such cycle."""
    cycle = contract.payment_cycle_days
    start = contract.start_date
    step = timedelta(days=cycle)

    if contract.pro_rata_first_month and start.day != 1:
        first_end = min(first_of_next_month(start), start + step)
        if index == 0:
            period_start, full_end = start, first_end
        else:
            period_start = first_end + (index - 1) * step
            full_end = period_start + step
    else:
        period_start = start + index * step
        full_end = period_start + step

    end = full_end
    if contract.closed_on is not None:
        if period_start >= contract.closed_on:
            return None
        end = min(full_end, contract.closed_on)

    return CyclePeriod(
        index=index,
        start=period_start,
        end=end,
        cycle_days=cycle,
        is_prorated=(end - period_start).days < cycle,
    )


def vehicle_breakdown(vehicle: ContractVehicle, vat_rate: Decimal = VAT_RATE) -> TaxBreakdown:
    return breakdown(vehicle.monthly_price, vehicle.price_input_type, vat_rate)


def monthly_total(
    vehicles,
    vat_rate: Decimal = VAT_RATE,
) -> TaxBreakdown:
    """Full-cycle HT / TVA / TTC for a set of vehicles, on a TTC basis."""
    ttc = sum(
        (vehicle_breakdown(v, vat_rate).ttc for v in vehicles),
        ZERO,
    )
    return breakdown(ttc, TaxBasis.TTC, vat_rate)


def build_invoice(
    contract: LongTermContract,
    index: int,
    vat_rate: Decimal = VAT_RATE,
    invoice_id: UUID | None = None,
    amount_paid: Decimal = ZERO,
) -> Invoice | None:
    """Price cycle ``index`` under the contract's current vehicles."""
    period = cycle_period(contract, index)
    if period is None:
        return None

    billed = sorted(
        (v for v in contract.vehicles if v.overlaps(period.start, period.end)),
        key=lambda v: (v.active_from, v.vehicle_id),
    )
    lines = []
    for vehicle in billed:
        amount = vehicle_breakdown(vehicle, vat_rate)
        if period.is_prorated:
            amount = scale_breakdown(amount, period.ratio, vat_rate)
        lines.append(InvoiceLine(vehicle_id=vehicle.vehicle_id, amount=amount))

    amount_due = monthly_total(billed, vat_rate)
    if period.is_prorated:
        amount_due = scale_breakdown(amount_due, period.ratio, vat_rate)

    paid = amount_paid >= amount_due.ttc
    return Invoice(
        id=invoice_id or uuid4(),
        contract_id=contract.id,
        cycle_index=index,
        period_start=period.start,
        period_end=period.end,
        due_date=period.end,
        amount_due=amount_due,
        lines=tuple(lines),
        status=InvoiceStatus.PAID if paid else InvoiceStatus.PENDING,
        amount_paid=amount_paid,
        is_prorated=period.is_prorated,
    )


# =========================================================================
# Issuance and repricing
# =========================================================================


def issue_invoices(
    contract: LongTermContract,
    as_of: date,
    lookahead_days: int = 0,
    vat_rate: Decimal = VAT_RATE,
) -> tuple[LongTermContract, tuple[Invoice, ...]]:
    """
    Issue every not-yet-issued cycle starting on or before
    ``as_of + lookahead_days``.  Any credit balance is applied to the new
    invoices.
    """
    horizon = as_of + timedelta(days=lookahead_days)
    issued: list[Invoice] = []
    index = contract.next_cycle_index
    while True:
        period = cycle_period(contract, index)
        if period is None or period.start > horizon:
            break
        issued.append(build_invoice(contract, index, vat_rate))
        index += 1

    if not issued:
        return contract, ()

    updated = _apply_credit(replace(contract, invoices=contract.invoices + tuple(issued)))
    issued_ids = {i.id for i in issued}
    final = tuple(i for i in updated.invoices if i.id in issued_ids)

    logger.info(
        "invoices_issued",
        extra={
            "contract_id": str(contract.id),
            "count": len(final),
            "first_cycle": final[0].cycle_index,
            "last_cycle": final[-1].cycle_index,
            "amount_ttc": str(sum_breakdowns(i.amount_due for i in final).ttc),
        },
    )
    return updated, final


def recompute_future_invoices(
    contract: LongTermContract,
    today: date,
    vat_rate: Decimal = VAT_RATE,
) -> LongTermContract:
    """
    Re-price pending invoices whose period starts after ``today``.

    Invoices of cycles that no longer exist (contract closed before they
    start) are dropped when nothing was paid on them.  Amounts paid above
    a lowered total move to the credit balance.
    """
    credit = contract.credit_balance
    invoices: list[Invoice] = []
    changed = 0
    for invoice in contract.invoices:
        if invoice.status is not InvoiceStatus.PENDING or invoice.period_start <= today:
            invoices.append(invoice)
            continue
        rebuilt = build_invoice(
            contract,
            invoice.cycle_index,
            vat_rate,
            invoice_id=invoice.id,
            amount_paid=invoice.amount_paid,
        )
        if rebuilt is None:
            if invoice.amount_paid > ZERO:
                invoices.append(invoice)
            else:
                changed += 1
            continue
        if rebuilt.amount_paid > rebuilt.amount_due.ttc:
            credit += rebuilt.amount_paid - rebuilt.amount_due.ttc
            rebuilt = replace(rebuilt, amount_paid=rebuilt.amount_due.ttc)
        if rebuilt != invoice:
            changed += 1
        invoices.append(rebuilt)

    if changed:
        logger.info(
            "future_invoices_recomputed",
            extra={"contract_id": str(contract.id), "changed": changed},
        )
    return _apply_credit(replace(contract, invoices=tuple(invoices), credit_balance=credit))


# =========================================================================
# Payments
# =========================================================================


def _allocate(
    invoices: tuple[Invoice, ...],
    amount: Decimal,
    paid_on: date,
    first_invoice_id: UUID | None = None,
) -> tuple[tuple[Invoice, ...], list[tuple[UUID, Decimal]], Decimal]:
    order = sorted(
        (i for i in invoices if i.status is InvoiceStatus.PENDING),
        key=lambda i: (i.id != first_invoice_id, i.cycle_index),
    )
    remaining = amount
    updated = {}
    applied: list[tuple[UUID, Decimal]] = []
    for invoice in order:
        if remaining <= ZERO:
            break
        share = min(remaining, invoice.outstanding)
        remaining -= share
        paid_total = invoice.amount_paid + share
        settled = paid_total >= invoice.amount_due.ttc
        updated[invoice.id] = replace(
            invoice,
            amount_paid=paid_total,
            status=InvoiceStatus.PAID if settled else InvoiceStatus.PENDING,
            paid_on=paid_on if settled else invoice.paid_on,
        )
        applied.append((invoice.id, share))
    return tuple(updated.get(i.id, i) for i in invoices), applied, remaining


def _apply_credit(contract: LongTermContract) -> LongTermContract:
    if contract.credit_balance <= ZERO or not contract.pending_invoices:
        return contract
    on = min(i.period_start for i in contract.pending_invoices)
    invoices, applied, remaining = _allocate(contract.invoices, contract.credit_balance, on)
    if applied:
        logger.info(
            "credit_applied",
            extra={
                "contract_id": str(contract.id),
                "amount": str(contract.credit_balance - remaining),
            },
        )
    return replace(contract, invoices=invoices, credit_balance=remaining)


def allocate_payment(
    contract: LongTermContract,
    amount: Decimal,
    paid_on: date,
    invoice_id: UUID | None = None,
) -> PaymentAllocation:
    """
    Apply a payment to the targeted invoice first, then pending invoices
    oldest first.  What is left becomes credit.

    Raises:
        ValidationError(invalid_payment_amount): amount is not positive.
        InvoiceNotFoundError: invoice_id is not on the contract.
    """
    value = to_decimal(amount)
    if value <= ZERO:
        raise ValidationError("invalid_payment_amount", field="amount", detail=str(value))
    if invoice_id is not None and contract.find_invoice(invoice_id) is None:
        raise InvoiceNotFoundError(str(contract.id), str(invoice_id))

    invoices, applied, remaining = _allocate(contract.invoices, value, paid_on, invoice_id)
    payment = ContractPayment(id=uuid4(), amount=value, paid_on=paid_on, invoice_id=invoice_id)
    updated = replace(
        contract,
        invoices=invoices,
        payments=contract.payments + (payment,),
        credit_balance=contract.credit_balance + remaining,
    )
    return PaymentAllocation(
        contract=updated,
        payment=payment,
        applied=tuple(applied),
        credit_added=remaining,
    )


def remaining_to_pay(contract: LongTermContract) -> Decimal:
    return max(contract.total_invoiced - contract.total_paid, ZERO)


# =========================================================================
# Vehicles and closing
# =========================================================================


def add_vehicle(
    contract: LongTermContract,
    vehicle_id: str,
    monthly_price: Decimal,
    price_input_type: TaxBasis,
    active_from: date,
) -> LongTermContract:
    """
    Put a vehicle on the contract from ``active_from``.

    Raises:
        ValidationError: contract_closed, vehicle_required, negative_price,
            invalid_date_range or vehicle_already_on_contract.
    """
    if contract.is_closed:
        raise ValidationError("contract_closed", field="contract_id", detail=str(contract.id))
    if not vehicle_id:
        raise ValidationError("vehicle_required", field="vehicle_id")
    price = to_decimal(monthly_price)
    if price < ZERO:
        raise ValidationError("negative_price", field="monthly_price", detail=str(price))
    if active_from < contract.start_date:
        raise ValidationError(
            "invalid_date_range",
            field="active_from",
            detail=f"{active_from.isoformat()} before contract start",
        )
    for existing in contract.vehicles:
        if existing.vehicle_id == vehicle_id and (
            existing.active_to is None or existing.active_to > active_from
        ):
            raise ValidationError(
                "vehicle_already_on_contract", field="vehicle_id", detail=vehicle_id
            )

    vehicle = ContractVehicle(
        id=uuid4(),
        vehicle_id=vehicle_id,
        monthly_price=price,
        price_input_type=TaxBasis(price_input_type),
        active_from=active_from,
    )
    return replace(contract, vehicles=contract.vehicles + (vehicle,))


def remove_vehicle(
    contract: LongTermContract,
    vehicle_id: str,
    end_date: date,
) -> LongTermContract:
    """
    Take a vehicle off the contract from ``end_date`` (exclusive).

    Raises:
        VehicleNotOnContractError: no open assignment for the vehicle.
        ValidationError(invalid_date_range): end_date before active_from.
    """
    for position, vehicle in enumerate(contract.vehicles):
        if vehicle.vehicle_id == vehicle_id and vehicle.active_to is None:
            break
    else:
        raise VehicleNotOnContractError(str(contract.id), vehicle_id)

    if end_date < vehicle.active_from:
        raise ValidationError(
            "invalid_date_range",
            field="end_date",
            detail=f"{end_date.isoformat()} before {vehicle.active_from.isoformat()}",
        )
    vehicles = list(contract.vehicles)
    vehicles[position] = replace(vehicle, active_to=end_date)
    return replace(contract, vehicles=tuple(vehicles))


def close_contract(
    contract: LongTermContract,
    end_date: date,
    vat_rate: Decimal = VAT_RATE,
) -> tuple[LongTermContract, tuple[Invoice, ...]]:
    """
    Stop billing at ``end_date`` (exclusive) and issue the remaining
    cycles, the last one prorated when the end falls inside it.

    Raises:
        ValidationError: contract_closed or invalid_date_range.
    """
    if contract.is_closed:
        raise ValidationError("contract_closed", field="contract_id", detail=str(contract.id))
    if end_date <= contract.start_date:
        raise ValidationError(
            "invalid_date_range",
            field="end_date",
            detail=f"{end_date.isoformat()} not after contract start",
        )

    vehicles = tuple(
        replace(v, active_to=end_date)
        if v.active_to is None or v.active_to > end_date
        else v
        for v in contract.vehicles
    )
    closed = replace(contract, vehicles=vehicles, closed_on=end_date)
    last_day = end_date - timedelta(days=1)
    closed = recompute_future_invoices(closed, last_day, vat_rate)
    closed, final = issue_invoices(closed, last_day, 0, vat_rate)

    logger.info(
        "contract_closed",
        extra={
            "contract_id": str(contract.id),
            "closed_on": end_date.isoformat(),
            "final_invoice_count": len(final),
        },
    )
    return closed, final


# =========================================================================
# Classification
# =========================================================================


def next_due_date(contract: LongTermContract) -> date | None:
    """Earliest pending due date, else the due date of the next cycle."""
    pending = contract.pending_invoices
    if pending:
        return min(i.due_date for i in pending)
    period = cycle_period(contract, contract.next_cycle_index)
    return period.end if period is not None else None


def overdue_status(
    contract: LongTermContract,
    today: date,
    warning_window: int = DEFAULT_DUE_SOON_WINDOW_DAYS,
) -> OverdueStatus:
    """Payment health on ``today``.  Never persisted."""
    due = next_due_date(contract)
    if due is None:
        return OverdueStatus.ON_TIME
    if today > due:
        return OverdueStatus.OVERDUE
    if (due - today).days <= warning_window:
        return OverdueStatus.DUE_SOON
    return OverdueStatus.ON_TIME


def invoice_severity(
    invoice: Invoice,
    today: date,
    warning_window: int = DEFAULT_DUE_SOON_WINDOW_DAYS,
    severe_days: int = DEFAULT_SEVERE_OVERDUE_DAYS,
) -> InvoiceSeverity:
    if invoice.is_paid:
        return InvoiceSeverity.PAID
    days_past = (today - invoice.due_date).days
    if days_past >= severe_days:
        return InvoiceSeverity.SEVERELY_OVERDUE
    if days_past > 0:
        return InvoiceSeverity.OVERDUE
    if -days_past <= warning_window:
        return InvoiceSeverity.DUE_SOON
    return InvoiceSeverity.ON_TIME


# =========================================================================
# Scheduler
# =========================================================================


class LongTermContractScheduler:
    """
    The module functions bound to one billing policy.

    Contract:
        Pure; holds only values copied from the billing policy.
    """

    def __init__(
        self,
        vat_rate: Decimal = VAT_RATE,
        due_soon_window_days: int = DEFAULT_DUE_SOON_WINDOW_DAYS,
        severe_overdue_days: int = DEFAULT_SEVERE_OVERDUE_DAYS,
        currency: str = "MAD",
    ):
        self.vat_rate = vat_rate
        self.due_soon_window_days = due_soon_window_days
        self.severe_overdue_days = severe_overdue_days
        self.currency = currency

    @classmethod
    def from_policy(cls, policy) -> "LongTermContractScheduler":
        return cls(
            vat_rate=policy.vat_rate,
            due_soon_window_days=policy.due_soon_window_days,
            severe_overdue_days=policy.severe_overdue_days,
            currency=policy.currency,
        )

    def issue_invoices(self, contract, as_of: date, lookahead_days: int = 0):
        return issue_invoices(contract, as_of, lookahead_days, self.vat_rate)

    def recompute_future_invoices(self, contract, today: date):
        return recompute_future_invoices(contract, today, self.vat_rate)

    def close_contract(self, contract, end_date: date):
        return close_contract(contract, end_date, self.vat_rate)

    def overdue_status(self, contract, today: date) -> OverdueStatus:
        return overdue_status(contract, today, self.due_soon_window_days)

    def invoice_severity(self, invoice, today: date) -> InvoiceSeverity:
        return invoice_severity(
            invoice, today, self.due_soon_window_days, self.severe_overdue_days
        )

    def monthly_total(self, contract, on: date) -> TaxBreakdown:
        return monthly_total(contract.active_vehicles(on), self.vat_rate)

    def statement(self, contract: LongTermContract, today: date) -> ContractStatement:
        return ContractStatement(
            contract_id=contract.id,
            client_id=contract.client_id,
            as_of=today,
            next_due_date=next_due_date(contract),
            overdue_status=self.overdue_status(contract, today),
            monthly_total=self.monthly_total(contract, today),
            total_invoiced=contract.total_invoiced,
            total_paid=contract.total_paid,
            remaining_to_pay=remaining_to_pay(contract),
            credit_balance=contract.credit_balance,
            pending_invoice_count=len(contract.pending_invoices),
            invoices=tuple((i, self.invoice_severity(i, today)) for i in contract.invoices),
            closed_on=contract.closed_on,
            currency=self.currency,
        )
