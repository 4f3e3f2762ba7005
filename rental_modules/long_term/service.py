"""
Long-Term Contract Service (``rental_modules.long_term.service``).

Responsibility
--------------
Persistence shell for lease contracts: creation, vehicle changes, cycle
invoicing, payment allocation, closing and statements.  Pure scheduling
lives in ``scheduler.py``; this module loads, delegates and writes back.

Invariants enforced
-------------------
* Mutations on one contract run under a per-contract lock and the
  contract row's version column.
* Adding or removing a vehicle recomputes only pending invoices whose
  period has not started; issued invoices keep their amounts.
* Services flush, callers commit.

Failure modes
-------------
* ``ContractNotFoundError`` for unknown ids.
* ``ValidationError`` / ``VehicleNotOnContractError`` /
  ``InvoiceNotFoundError`` from the scheduler, raised before any write.
* ``ConflictError`` on a stale version.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from rental_config import BillingPolicy, get_active_config
from rental_engines.tax import TaxBasis
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import ConflictError, ContractNotFoundError, ValidationError
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.base import BaseService
from rental_kernel.services.lock_registry import KeyedLockRegistry, default_registry
from rental_modules.long_term import scheduler
from rental_modules.long_term.models import (
    ContractStatement,
    Invoice,
    LongTermContract,
    OverdueStatus,
    PaymentAllocation,
    PaymentCycle,
)
from rental_modules.long_term.orm import (
    ContractInvoiceModel,
    ContractPaymentModel,
    ContractVehicleModel,
    LongTermContractModel,
)

logger = get_logger("modules.long_term.service")


@dataclass(frozen=True)
class VehicleTerms:
    """Vehicle and monthly price to put on a new contract."""

    vehicle_id: str
    monthly_price: Decimal
    price_input_type: TaxBasis = TaxBasis.TTC


class LongTermContractService(BaseService[LongTermContractModel]):
    """
    Persistence shell around the long-term scheduler.

    Contract
    --------
    * Mutating methods take ``actor_id`` and an optional
      ``expected_version``.
    * ``today`` defaults to the injected clock.

    Non-goals
    ---------
    * Does NOT run on a timer; callers invoke ``issue_invoices``.
    """

    entity_type = "long_term_contract"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: BillingPolicy | None = None,
        locks: KeyedLockRegistry | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or get_active_config()
        self.scheduler = scheduler.LongTermContractScheduler.from_policy(self.policy)
        self._locks = locks or default_registry

    # =========================================================================
    # Contract
    # =========================================================================

    def create_contract(
        self,
        client_id: str,
        start_date: date,
        vehicles: Iterable[VehicleTerms],
        actor_id: UUID,
        payment_cycle: int | str | None = None,
        pro_rata_first_month: bool = False,
    ) -> LongTermContract:
        cycle_days = PaymentCycle.resolve(
            payment_cycle if payment_cycle is not None else self.policy.default_cycle_days
        )
        contract = LongTermContract(
            id=uuid4(),
            client_id=client_id,
            start_date=start_date,
            payment_cycle_days=cycle_days,
            pro_rata_first_month=pro_rata_first_month,
        )
        for terms in vehicles:
            contract = scheduler.add_vehicle(
                contract,
                terms.vehicle_id,
                terms.monthly_price,
                terms.price_input_type,
                start_date,
            )

        with LogContext.bind(contract_id=contract.id, actor_id=actor_id):
            model = LongTermContractModel(
                id=contract.id,
                client_id=client_id,
                start_date=start_date,
                payment_cycle_days=cycle_days,
                pro_rata_first_month=pro_rata_first_month,
                created_by_id=actor_id,
            )
            self.session.add(model)
            self._apply(model, contract, actor_id)
            self._flush(contract.id)

            logger.info(
                "long_term_contract_created",
                extra={
                    "client_id": client_id,
                    "start_date": start_date.isoformat(),
                    "payment_cycle_days": cycle_days,
                    "pro_rata_first_month": pro_rata_first_month,
                    "vehicle_count": len(contract.vehicles),
                },
            )
            return replace(contract, version=model.version)

    def add_vehicle(
        self,
        contract_id: UUID,
        vehicle_id: str,
        monthly_price: Decimal,
        actor_id: UUID,
        price_input_type: TaxBasis = TaxBasis.TTC,
        active_from: date | None = None,
        expected_version: int | None = None,
    ) -> LongTermContract:
        today = self.clock.today()
        start = active_from or today

        def operation(contract: LongTermContract) -> LongTermContract:
            updated = scheduler.add_vehicle(
                contract, vehicle_id, monthly_price, price_input_type, start
            )
            return self.scheduler.recompute_future_invoices(updated, today)

        return self._mutate(contract_id, actor_id, expected_version, "vehicle_added", operation)

    def remove_vehicle(
        self,
        contract_id: UUID,
        vehicle_id: str,
        actor_id: UUID,
        end_date: date | None = None,
        expected_version: int | None = None,
    ) -> LongTermContract:
        today = self.clock.today()
        end = end_date or today

        def operation(contract: LongTermContract) -> LongTermContract:
            updated = scheduler.remove_vehicle(contract, vehicle_id, end)
            return self.scheduler.recompute_future_invoices(updated, today)

        return self._mutate(
            contract_id, actor_id, expected_version, "vehicle_removed", operation
        )

    def close_contract(
        self,
        contract_id: UUID,
        actor_id: UUID,
        end_date: date | None = None,
        expected_version: int | None = None,
    ) -> tuple[LongTermContract, tuple[Invoice, ...]]:
        """Stop billing and issue the final (prorated) invoice."""
        end = end_date or self.clock.today()
        final: list[Invoice] = []

        def operation(contract: LongTermContract) -> LongTermContract:
            closed, issued = self.scheduler.close_contract(contract, end)
            final.extend(issued)
            return closed

        contract = self._mutate(
            contract_id, actor_id, expected_version, "long_term_contract_closed", operation
        )
        return contract, tuple(final)

    # =========================================================================
    # Invoicing and payments
    # =========================================================================

    def issue_invoices(
        self,
        contract_id: UUID,
        actor_id: UUID,
        as_of: date | None = None,
        lookahead_days: int | None = None,
        expected_version: int | None = None,
    ) -> tuple[Invoice, ...]:
        """Issue due cycles.  Running it twice for the same date issues nothing new."""
        on = as_of or self.clock.today()
        ahead = (
            lookahead_days if lookahead_days is not None else self.policy.invoice_lookahead_days
        )
        issued: list[Invoice] = []

        def operation(contract: LongTermContract) -> LongTermContract:
            updated, new = self.scheduler.issue_invoices(contract, on, ahead)
            issued.extend(new)
            return updated

        self._mutate(contract_id, actor_id, expected_version, "invoices_issued", operation)
        return tuple(issued)

    def record_payment(
        self,
        contract_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        paid_on: date | None = None,
        invoice_id: UUID | None = None,
        expected_version: int | None = None,
    ) -> PaymentAllocation:
        on = paid_on or self.clock.today()
        allocations: list[PaymentAllocation] = []

        def operation(contract: LongTermContract) -> LongTermContract:
            allocation = scheduler.allocate_payment(contract, amount, on, invoice_id)
            allocations.append(allocation)
            return allocation.contract

        contract = self._mutate(
            contract_id, actor_id, expected_version, "contract_payment_recorded", operation
        )
        return replace(allocations[0], contract=contract)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_contract(self, contract_id: UUID) -> LongTermContract:
        return self._load(contract_id).to_dto()

    def next_due_date(self, contract_id: UUID) -> date | None:
        return scheduler.next_due_date(self.get_contract(contract_id))

    def overdue_status(self, contract_id: UUID, today: date | None = None) -> OverdueStatus:
        return self.scheduler.overdue_status(
            self.get_contract(contract_id), today or self.clock.today()
        )

    def statement(self, contract_id: UUID, today: date | None = None) -> ContractStatement:
        return self.scheduler.statement(
            self.get_contract(contract_id), today or self.clock.today()
        )

    def overdue_report(self, today: date | None = None) -> list[ContractStatement]:
        """Statements of every contract that is overdue or due soon."""
        on = today or self.clock.today()
        report = []
        for model in self.session.scalars(select(LongTermContractModel)).all():
            statement = self.scheduler.statement(model.to_dto(), on)
            if statement.overdue_status is not OverdueStatus.ON_TIME:
                report.append(statement)
        return sorted(report, key=lambda s: (s.next_due_date or on, str(s.contract_id)))

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, contract_id: UUID) -> LongTermContractModel:
        model = self.session.get(LongTermContractModel, contract_id)
        if model is None:
            raise ContractNotFoundError(str(contract_id))
        return model

    def _mutate(
        self,
        contract_id: UUID,
        actor_id: UUID,
        expected_version: int | None,
        event: str,
        operation: Callable[[LongTermContract], LongTermContract],
    ) -> LongTermContract:
        with LogContext.bind(contract_id=contract_id, actor_id=actor_id):
            with self._locks.hold(("long_term_contract", contract_id)):
                model = self._load(contract_id)
                if expected_version is not None and model.version != expected_version:
                    raise ConflictError(
                        self.entity_type, str(contract_id), expected_version, model.version
                    )
                before = model.to_dto()
                try:
                    contract = operation(before)
                except ValidationError as e:
                    logger.warning(
                        "long_term_mutation_rejected",
                        extra={"event": event, "reason": e.reason, "field": e.field},
                    )
                    raise

                self._apply(model, contract, actor_id)
                self._flush(contract_id)

                logger.info(
                    event,
                    extra={
                        "invoice_count": len(contract.invoices),
                        "pending_invoice_count": len(contract.pending_invoices),
                        "credit_balance": str(contract.credit_balance),
                    },
                )
                return replace(contract, version=model.version)

    def _apply(
        self,
        model: LongTermContractModel,
        contract: LongTermContract,
        actor_id: UUID,
    ) -> None:
        model.credit_balance = contract.credit_balance
        model.closed_on = contract.closed_on
        model.updated_by_id = actor_id

        vehicle_rows = {row.id: row for row in model.vehicles}
        for vehicle in contract.vehicles:
            row = vehicle_rows.get(vehicle.id)
            if row is None:
                model.vehicles.append(
                    ContractVehicleModel(
                        id=vehicle.id,
                        contract_id=contract.id,
                        vehicle_id=vehicle.vehicle_id,
                        monthly_price=vehicle.monthly_price,
                        price_input_type=vehicle.price_input_type.value,
                        active_from=vehicle.active_from,
                        active_to=vehicle.active_to,
                        created_by_id=actor_id,
                    )
                )
            elif row.active_to != vehicle.active_to:
                row.active_to = vehicle.active_to
                row.updated_by_id = actor_id

        kept = {i.id for i in contract.invoices}
        for row in list(model.invoices):
            if row.id not in kept:
                model.invoices.remove(row)
        invoice_rows = {row.id: row for row in model.invoices}
        for invoice in contract.invoices:
            row = invoice_rows.get(invoice.id)
            if row is None:
                row = ContractInvoiceModel(
                    id=invoice.id,
                    contract_id=contract.id,
                    created_by_id=actor_id,
                )
                row.apply(invoice)
                model.invoices.append(row)
            elif row.to_dto() != invoice:
                row.apply(invoice)
                row.updated_by_id = actor_id

        for index in range(len(model.payments), len(contract.payments)):
            payment = contract.payments[index]
            model.payments.append(
                ContractPaymentModel(
                    id=payment.id,
                    contract_id=contract.id,
                    sequence=index,
                    amount=payment.amount,
                    paid_on=payment.paid_on,
                    invoice_id=payment.invoice_id,
                    created_by_id=actor_id,
                )
            )

        # Child-only changes must still advance the contract's version.
        if model.version is not None:
            flag_modified(model, "credit_balance")
