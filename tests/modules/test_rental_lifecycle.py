"""
Tests for the rental lifecycle state machine.

Covers:
- Workflow declaration (states, transitions, terminal states)
- Guarded transitions: vehicle on activation, settlement on completion
- Status gate in front of ledger mutations
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from rental_engines.segment_pricing import FormulaPricing
from rental_kernel.domain.workflow import Transition, Workflow
from rental_kernel.exceptions import (
    InvalidStatusTransitionError,
    LedgerMutationNotAllowedError,
    ValidationError,
)
from rental_modules.rentals.ledger import open_ledger
from rental_modules.rentals.lifecycle import (
    RENTAL_LIFECYCLE_WORKFLOW,
    RentalLifecycleStateMachine,
)
from rental_modules.rentals.models import RentalStatus, Settlement


@pytest.fixture
def machine():
    return RentalLifecycleStateMachine()


@pytest.fixture
def pending():
    return open_ledger(
        uuid4(),
        "client-1",
        date(2024, 3, 1),
        date(2024, 3, 10),
        FormulaPricing(price_per_day=Decimal("100")),
        "V1",
    ).rental


@pytest.fixture
def active(machine, pending):
    return machine.activate(pending)


class TestWorkflowDeclaration:
    def test_terminal_states(self):
        assert RENTAL_LIFECYCLE_WORKFLOW.is_terminal("completed")
        assert RENTAL_LIFECYCLE_WORKFLOW.is_terminal("cancelled")
        assert not RENTAL_LIFECYCLE_WORKFLOW.is_terminal("active")

    def test_targets_from_pending(self):
        assert set(RENTAL_LIFECYCLE_WORKFLOW.targets_from("pending")) == {
            "confirmed",
            "active",
            "cancelled",
        }

    def test_no_transition_leaves_terminal_state(self):
        assert RENTAL_LIFECYCLE_WORKFLOW.targets_from("completed") == ()
        assert RENTAL_LIFECYCLE_WORKFLOW.targets_from("cancelled") == ()

    def test_workflow_rejects_unknown_state(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )


class TestTransitions:
    def test_confirm(self, machine, pending):
        assert machine.confirm(pending).status == RentalStatus.CONFIRMED

    def test_activate_from_confirmed(self, machine, pending):
        rental = machine.activate(machine.confirm(pending))

        assert rental.status == RentalStatus.ACTIVE

    def test_activate_assigns_vehicle(self, machine):
        rental = open_ledger(
            uuid4(), "c", date(2024, 3, 1), date(2024, 3, 5), FormulaPricing(price_per_day=Decimal("90"))
        ).rental

        activated = machine.activate(rental, vehicle_id="V9")

        assert activated.current_vehicle_id == "V9"
        assert activated.total_price == rental.total_price

    def test_activate_without_vehicle_rejected(self, machine):
        rental = open_ledger(
            uuid4(), "c", date(2024, 3, 1), date(2024, 3, 5), FormulaPricing(price_per_day=Decimal("90"))
        ).rental

        with pytest.raises(ValidationError, match="vehicle_required"):
            machine.activate(rental)

    def test_complete_records_settlement(self, machine, active):
        settlement = Settlement(final_payment=Decimal("900"), rating=5, note="returned clean")

        completed = machine.complete(active, settlement, paid_on=date(2024, 3, 10))

        assert completed.status == RentalStatus.COMPLETED
        assert completed.settlement == settlement
        assert completed.total_paid == Decimal("900")
        assert completed.payments[-1].paid_on == date(2024, 3, 10)
        assert completed.remaining_to_pay == Decimal("0")

    def test_complete_zero_payment_adds_no_payment(self, machine, active):
        completed = machine.complete(active, Settlement(rating=3))

        assert completed.payments == ()

    def test_complete_without_settlement_rejected(self, machine, active):
        with pytest.raises(ValidationError, match="settlement_required"):
            machine.complete(active, None)

    def test_complete_from_pending_rejected(self, machine, pending):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            machine.complete(pending, Settlement())

        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "completed"

    @pytest.mark.parametrize("status", [RentalStatus.PENDING, RentalStatus.ACTIVE])
    def test_cancel(self, machine, pending, active, status):
        rental = pending if status is RentalStatus.PENDING else active

        assert machine.cancel(rental).status == RentalStatus.CANCELLED

    def test_cancelled_is_terminal(self, machine, pending):
        cancelled = machine.cancel(pending)

        assert not machine.can_transition(cancelled, RentalStatus.ACTIVE)
        with pytest.raises(InvalidStatusTransitionError):
            machine.activate(cancelled)

    def test_transition_logged(self, machine, pending, captured_logs):
        machine.confirm(pending)

        records = [r for r in captured_logs() if r["message"] == "rental_status_transition"]
        assert records[-1]["from_status"] == "pending"
        assert records[-1]["to_status"] == "confirmed"
        assert records[-1]["action"] == "confirm"


class TestSettlement:
    @pytest.mark.parametrize("rating", [0, 6, True])
    def test_invalid_rating(self, rating):
        with pytest.raises(ValidationError, match="invalid_rating"):
            Settlement(rating=rating)

    def test_negative_final_payment(self):
        with pytest.raises(ValidationError, match="invalid_payment_amount"):
            Settlement(final_payment=Decimal("-1"))


class TestMutationGate:
    """Extensions and vehicle changes require an active rental."""

    def test_extend_requires_active(self, machine, pending):
        with pytest.raises(LedgerMutationNotAllowedError) as exc_info:
            machine.extend(pending, date(2024, 3, 15), FormulaPricing(price_per_day=Decimal("120")))

        assert exc_info.value.operation == "extend"
        assert exc_info.value.status == "pending"

    def test_change_vehicle_requires_active(self, machine, pending):
        with pytest.raises(LedgerMutationNotAllowedError):
            machine.change_vehicle(
                pending, date(2024, 3, 4), "V2", FormulaPricing(price_per_day=Decimal("150"))
            )

    def test_extend_when_active(self, machine, active):
        mutation = machine.extend(active, date(2024, 3, 15), FormulaPricing(price_per_day=Decimal("120")))

        assert mutation.rental.status == RentalStatus.ACTIVE
        assert mutation.new_total == Decimal("1500.00")

    def test_extend_to_grand_total(self, machine, active):
        mutation = machine.extend_to_grand_total(active, date(2024, 3, 15), Decimal("1400"))

        assert mutation.created_segment.computed_total == Decimal("500.00")
        assert mutation.rental.total_price == Decimal("1400.00")

    def test_reprice_before_activation(self, machine, pending):
        mutation = machine.reprice(pending, FormulaPricing(price_per_day=Decimal("80")))

        assert mutation.new_total == Decimal("720.00")

    def test_reprice_after_completion_rejected(self, machine, active):
        completed = machine.complete(active, Settlement())

        with pytest.raises(LedgerMutationNotAllowedError) as exc_info:
            machine.reprice(completed, FormulaPricing(price_per_day=Decimal("80")))

        assert exc_info.value.operation == "reprice"

    def test_completed_rental_cannot_extend(self, machine, active):
        completed = machine.complete(active, Settlement())

        with pytest.raises(LedgerMutationNotAllowedError):
            machine.extend(completed, date(2024, 3, 15), FormulaPricing(price_per_day=Decimal("120")))
