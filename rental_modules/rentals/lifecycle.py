"""Rental lifecycle.

State machine for rental status and the gate in front of every ledger
mutation: extensions and vehicle changes only while ``active``, repricing
until the rental is closed.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

from rental_engines.segment_pricing import PricingBasis
from rental_kernel.domain.values import ZERO
from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.exceptions import (
    InvalidStatusTransitionError,
    LedgerMutationNotAllowedError,
    ValidationError,
)
from rental_kernel.logging_config import get_logger
from rental_modules.rentals import ledger
from rental_modules.rentals.models import (
    LedgerMutation,
    Rental,
    RentalPayment,
    RentalStatus,
    Settlement,
)

logger = get_logger("modules.rentals.lifecycle")


VEHICLE_ASSIGNED = Guard("vehicle_assigned", "A vehicle is assigned to the open segment")
SETTLEMENT_RECORDED = Guard("settlement_recorded", "Final payment and rating captured")

PENDING = RentalStatus.PENDING.value
CONFIRMED = RentalStatus.CONFIRMED.value
ACTIVE = RentalStatus.ACTIVE.value
COMPLETED = RentalStatus.COMPLETED.value
CANCELLED = RentalStatus.CANCELLED.value


RENTAL_LIFECYCLE_WORKFLOW = Workflow(
    name="rental_lifecycle",
    description="Short-term rental from reservation to return",
    initial_state=PENDING,
    states=(PENDING, CONFIRMED, ACTIVE, COMPLETED, CANCELLED),
    transitions=(
        Transition(PENDING, CONFIRMED, action="confirm"),
        Transition(PENDING, ACTIVE, action="activate", guard=VEHICLE_ASSIGNED),
        Transition(CONFIRMED, ACTIVE, action="activate", guard=VEHICLE_ASSIGNED),
        Transition(ACTIVE, COMPLETED, action="complete", guard=SETTLEMENT_RECORDED),
        Transition(PENDING, CANCELLED, action="cancel"),
        Transition(CONFIRMED, CANCELLED, action="cancel"),
        Transition(ACTIVE, CANCELLED, action="cancel"),
    ),
    terminal_states=(COMPLETED, CANCELLED),
)

logger.info(
    "rental_lifecycle_workflow_registered",
    extra={
        "workflow_name": RENTAL_LIFECYCLE_WORKFLOW.name,
        "state_count": len(RENTAL_LIFECYCLE_WORKFLOW.states),
        "transition_count": len(RENTAL_LIFECYCLE_WORKFLOW.transitions),
    },
)

LEDGER_MUTATION_STATUSES = frozenset({RentalStatus.ACTIVE})
REPRICE_STATUSES = frozenset(
    {RentalStatus.PENDING, RentalStatus.CONFIRMED, RentalStatus.ACTIVE}
)


class RentalLifecycleStateMachine:
    """
    Status transitions and status-gated ledger operations.

    Contract:
        Pure.  Every method takes a ``Rental`` and returns a new value;
        nothing is persisted here.

    Guarantees:
        - Validation failures leave the input rental untouched.
        - Completion records the settlement in the same returned value as
          the status change.
    """

    def __init__(self, workflow: Workflow = RENTAL_LIFECYCLE_WORKFLOW):
        self.workflow = workflow

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def can_transition(self, rental: Rental, to_status: RentalStatus) -> bool:
        return (
            self.workflow.find_transition(rental.status.value, RentalStatus(to_status).value)
            is not None
        )

    def transition(
        self,
        rental: Rental,
        to_status: RentalStatus,
        vehicle_id: str | None = None,
        settlement: Settlement | None = None,
        paid_on: date | None = None,
    ) -> Rental:
        """
        Move ``rental`` to ``to_status``, evaluating the transition guard.

        Raises:
            InvalidStatusTransitionError: not a workflow transition.
            ValidationError(vehicle_required): activating without a vehicle.
            ValidationError(settlement_required): completing without one.
        """
        target = RentalStatus(to_status)
        found = self.workflow.find_transition(rental.status.value, target.value)
        if found is None:
            raise InvalidStatusTransitionError(
                str(rental.id), rental.status.value, target.value
            )

        updated = rental
        if found.guard == VEHICLE_ASSIGNED:
            assigned = vehicle_id or rental.current_vehicle_id
            if not assigned:
                raise ValidationError("vehicle_required", field="vehicle_id")
            updated = ledger.assign_vehicle(updated, assigned)
        elif found.guard == SETTLEMENT_RECORDED:
            if settlement is None:
                raise ValidationError("settlement_required", field="settlement")
            payments = updated.payments
            if settlement.final_payment > ZERO:
                payments = payments + (
                    RentalPayment(
                        amount=settlement.final_payment,
                        paid_on=paid_on,
                        note=settlement.note,
                    ),
                )
            updated = replace(updated, payments=payments, settlement=settlement)

        logger.info(
            "rental_status_transition",
            extra={
                "rental_id": str(rental.id),
                "from_status": rental.status.value,
                "to_status": target.value,
                "action": found.action,
            },
        )
        return replace(updated, status=target)

    def confirm(self, rental: Rental) -> Rental:
        return self.transition(rental, RentalStatus.CONFIRMED)

    def activate(self, rental: Rental, vehicle_id: str | None = None) -> Rental:
        return self.transition(rental, RentalStatus.ACTIVE, vehicle_id=vehicle_id)

    def complete(
        self,
        rental: Rental,
        settlement: Settlement | None,
        paid_on: date | None = None,
    ) -> Rental:
        return self.transition(
            rental, RentalStatus.COMPLETED, settlement=settlement, paid_on=paid_on
        )

    def cancel(self, rental: Rental) -> Rental:
        return self.transition(rental, RentalStatus.CANCELLED)

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------

    def ensure_can_mutate(self, rental: Rental, operation: str) -> None:
        if rental.status not in LEDGER_MUTATION_STATUSES:
            raise LedgerMutationNotAllowedError(str(rental.id), rental.status.value, operation)

    def ensure_can_reprice(self, rental: Rental) -> None:
        if rental.status not in REPRICE_STATUSES:
            raise LedgerMutationNotAllowedError(str(rental.id), rental.status.value, "reprice")

    def extend(
        self,
        rental: Rental,
        new_end_date: date,
        pricing_basis: PricingBasis,
    ) -> LedgerMutation:
        self.ensure_can_mutate(rental, "extend")
        return ledger.append_extension(rental, new_end_date, pricing_basis)

    def extend_to_grand_total(
        self,
        rental: Rental,
        new_end_date: date,
        grand_total: Decimal,
    ) -> LedgerMutation:
        """Extend so that the rental total becomes ``grand_total``."""
        self.ensure_can_mutate(rental, "extend")
        basis = ledger.grand_total_extension_basis(rental, grand_total)
        return ledger.append_extension(rental, new_end_date, basis)

    def change_vehicle(
        self,
        rental: Rental,
        change_date: date,
        new_vehicle_id: str,
        pricing_basis: PricingBasis,
    ) -> LedgerMutation:
        self.ensure_can_mutate(rental, "change_vehicle")
        return ledger.split_at_change(rental, change_date, pricing_basis, new_vehicle_id)

    def reprice(self, rental: Rental, pricing_basis: PricingBasis) -> LedgerMutation:
        self.ensure_can_reprice(rental)
        return ledger.reprice_open_segment(rental, pricing_basis)
