"""
Rental Billing Service (``rental_modules.rentals.service``).

Responsibility
--------------
Single entry point for every rental ledger mutation and status change.
Loads the rental through SQLAlchemy, runs the pure lifecycle and ledger
functions, writes the resulting segments back and appends an audit row,
all inside the caller's transaction.

Architecture position
---------------------
**Modules layer** -- imperative shell.  Composes
``RentalLifecycleStateMachine`` (pure) with the ORM models of
``orm.py``.

Invariants enforced
-------------------
* Mutations on one rental are serialized by a per-rental lock
  (``KeyedLockRegistry``) inside the process and by the rental row's
  version column across processes.
* Services flush, callers commit: a truncated segment and its successor
  are written in one transaction or not at all.
* Only pricing inputs are written; totals are recomputed on load.

Failure modes
-------------
* ``RentalNotFoundError`` for unknown ids.
* ``ValidationError`` / lifecycle errors from the pure layer, raised
  before anything is written.
* ``ConflictError`` on a stale version (explicit ``expected_version`` or
  a concurrent UPDATE detected at flush).

Audit relevance
---------------
Every mutation logs a structured event (``rental_extended``,
``vehicle_changed``, ...) and inserts a ``LedgerMutationModel`` row with
old total, new total and delta.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from rental_config import BillingPolicy, get_active_config
from rental_engines.segment_pricing import FormulaPricing, PricingBasis, check_catalog_band
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import ConflictError, RentalNotFoundError, ValidationError
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.base import BaseService
from rental_kernel.services.lock_registry import KeyedLockRegistry, default_registry
from rental_modules.rentals import ledger
from rental_modules.rentals.lifecycle import RentalLifecycleStateMachine
from rental_modules.rentals.models import (
    LedgerMutation,
    LedgerMutationRecord,
    Rental,
    RentalStatus,
    RentalSummary,
    Settlement,
)
from rental_modules.rentals.orm import (
    LedgerMutationModel,
    PricingSegmentModel,
    RentalModel,
    RentalPaymentModel,
)

logger = get_logger("modules.rentals.service")


class RentalBillingService(BaseService[RentalModel]):
    """
    Persistence shell around the rental ledger.

    Contract
    --------
    * Every mutating method takes ``actor_id`` and an optional
      ``expected_version``; it returns the new domain value.
    * Reads (``get_rental``, ``summary``, ``mutation_history``) take no lock.

    Guarantees
    ----------
    * The session is flushed, never committed.
    * Validation failures leave the persisted rental untouched.

    Non-goals
    ---------
    * Does NOT retry on ``ConflictError``.
    * Does NOT check vehicle availability; a supplied vehicle id only has
      to be non-empty.
    """

    entity_type = "rental"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: BillingPolicy | None = None,
        locks: KeyedLockRegistry | None = None,
        lifecycle: RentalLifecycleStateMachine | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or get_active_config()
        self._locks = locks or default_registry
        self._lifecycle = lifecycle or RentalLifecycleStateMachine()

    # =========================================================================
    # Creation
    # =========================================================================

    def create_rental(
        self,
        client_id: str,
        start_date: date,
        end_date: date,
        pricing: PricingBasis,
        actor_id: UUID,
        vehicle_id: str | None = None,
        catalog_price: Decimal | None = None,
        immediate: bool = False,
    ) -> Rental:
        """
        Open a new rental with one initial segment.

        With ``immediate`` the rental goes straight from pending to
        active, which requires ``vehicle_id``.
        """
        self._check_catalog(pricing, catalog_price)
        rental_id = uuid4()

        with LogContext.bind(rental_id=rental_id, actor_id=actor_id):
            opened = ledger.open_ledger(
                rental_id, client_id, start_date, end_date, pricing, vehicle_id
            )
            rental = opened.rental
            if immediate:
                rental = self._lifecycle.activate(rental, vehicle_id)

            model = RentalModel(
                id=rental.id,
                client_id=client_id,
                status=rental.status.value,
                created_by_id=actor_id,
            )
            self.session.add(model)
            self._apply(model, rental, actor_id)
            self.session.add(
                LedgerMutationModel.from_mutation(
                    replace(opened, rental=rental), actor_id, sequence=0
                )
            )
            self._flush(rental.id)

            logger.info(
                "rental_created",
                extra={
                    "client_id": client_id,
                    "status": rental.status.value,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    "pricing_mode": pricing.mode.value,
                    "total_price": str(rental.total_price),
                },
            )
            return replace(rental, version=model.version)

    # =========================================================================
    # Ledger mutations
    # =========================================================================

    def extend(
        self,
        rental_id: UUID,
        new_end_date: date,
        pricing: PricingBasis,
        actor_id: UUID,
        expected_version: int | None = None,
        catalog_price: Decimal | None = None,
    ) -> LedgerMutation:
        """Extend an active rental with a new independently priced segment."""
        self._check_catalog(pricing, catalog_price)
        return self._mutate(
            rental_id,
            actor_id,
            expected_version,
            "rental_extended",
            lambda r: self._lifecycle.extend(r, new_end_date, pricing),
        )

    def extend_to_grand_total(
        self,
        rental_id: UUID,
        new_end_date: date,
        grand_total: Decimal,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> LedgerMutation:
        """Extend so that the rental total becomes ``grand_total`` (never lower)."""
        return self._mutate(
            rental_id,
            actor_id,
            expected_version,
            "rental_extended",
            lambda r: self._lifecycle.extend_to_grand_total(r, new_end_date, grand_total),
        )

    def change_vehicle(
        self,
        rental_id: UUID,
        change_date: date,
        new_vehicle_id: str,
        pricing: PricingBasis,
        actor_id: UUID,
        expected_version: int | None = None,
        catalog_price: Decimal | None = None,
    ) -> LedgerMutation:
        """Split the open segment at ``change_date`` onto ``new_vehicle_id``."""
        self._check_catalog(pricing, catalog_price)
        return self._mutate(
            rental_id,
            actor_id,
            expected_version,
            "vehicle_changed",
            lambda r: self._lifecycle.change_vehicle(r, change_date, new_vehicle_id, pricing),
        )

    def reprice(
        self,
        rental_id: UUID,
        pricing: PricingBasis,
        actor_id: UUID,
        expected_version: int | None = None,
        catalog_price: Decimal | None = None,
    ) -> LedgerMutation:
        """Replace the pricing basis of the open segment."""
        self._check_catalog(pricing, catalog_price)
        return self._mutate(
            rental_id,
            actor_id,
            expected_version,
            "rental_repriced",
            lambda r: self._lifecycle.reprice(r, pricing),
        )

    # =========================================================================
    # Status
    # =========================================================================

    def confirm(
        self, rental_id: UUID, actor_id: UUID, expected_version: int | None = None
    ) -> Rental:
        return self._transition(
            rental_id, actor_id, expected_version, self._lifecycle.confirm
        )

    def activate(
        self,
        rental_id: UUID,
        actor_id: UUID,
        vehicle_id: str | None = None,
        expected_version: int | None = None,
    ) -> Rental:
        return self._transition(
            rental_id,
            actor_id,
            expected_version,
            lambda r: self._lifecycle.activate(r, vehicle_id),
        )

    def complete(
        self,
        rental_id: UUID,
        settlement: Settlement | None,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Rental:
        """Complete an active rental, recording the settlement atomically."""
        paid_on = self.clock.today()
        return self._transition(
            rental_id,
            actor_id,
            expected_version,
            lambda r: self._lifecycle.complete(r, settlement, paid_on),
        )

    def cancel(
        self, rental_id: UUID, actor_id: UUID, expected_version: int | None = None
    ) -> Rental:
        return self._transition(
            rental_id, actor_id, expected_version, self._lifecycle.cancel
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        rental_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        paid_on: date | None = None,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> Rental:
        on = paid_on or self.clock.today()
        with LogContext.bind(rental_id=rental_id, actor_id=actor_id):
            with self._locks.hold(("rental", rental_id)):
                model = self._load_for_update(rental_id, expected_version)
                rental = ledger.record_rental_payment(model.to_dto(), amount, on, note)
                self._apply(model, rental, actor_id)
                self._flush(rental_id)

                logger.info(
                    "rental_payment_recorded",
                    extra={
                        "amount": str(rental.payments[-1].amount),
                        "total_paid": str(rental.total_paid),
                        "remaining_to_pay": str(rental.remaining_to_pay),
                    },
                )
                return replace(rental, version=model.version)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_rental(self, rental_id: UUID) -> Rental:
        return self._load(rental_id).to_dto()

    def summary(self, rental_id: UUID) -> RentalSummary:
        """Committed, derived totals for reporting."""
        rental = self.get_rental(rental_id)
        baseline = ledger.baseline_total(rental)
        return RentalSummary(
            rental_id=rental.id,
            client_id=rental.client_id,
            status=rental.status,
            start_date=rental.start_date,
            end_date=rental.end_date,
            day_count=rental.day_count,
            vehicle_id=rental.current_vehicle_id,
            total_price=rental.total_price,
            total_paid=rental.total_paid,
            remaining_to_pay=rental.remaining_to_pay,
            baseline_total=baseline,
            change_delta=rental.total_price - baseline,
            last_extension_delta=ledger.last_extension_delta(rental),
            segment_count=len(rental.segments),
            version=rental.version,
            currency=self.policy.currency,
            segments=rental.segments,
        )

    def mutation_history(self, rental_id: UUID) -> tuple[LedgerMutationRecord, ...]:
        self._load(rental_id)
        rows = self.session.scalars(
            select(LedgerMutationModel)
            .where(LedgerMutationModel.rental_id == rental_id)
            .order_by(LedgerMutationModel.sequence)
        ).all()
        return tuple(r.to_dto() for r in rows)

    def list_rentals(self, status: RentalStatus | None = None) -> list[Rental]:
        stmt = select(RentalModel)
        if status is not None:
            stmt = stmt.where(RentalModel.status == RentalStatus(status).value)
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_catalog(self, pricing: PricingBasis, catalog_price: Decimal | None) -> None:
        if catalog_price is None or not isinstance(pricing, FormulaPricing):
            return
        check_catalog_band(
            pricing.price_per_day,
            catalog_price,
            band=self.policy.catalog_price_band,
            enforce=self.policy.enforce_catalog_band,
        )

    def _load(self, rental_id: UUID) -> RentalModel:
        model = self.session.get(RentalModel, rental_id)
        if model is None:
            raise RentalNotFoundError(str(rental_id))
        return model

    def _load_for_update(self, rental_id: UUID, expected_version: int | None) -> RentalModel:
        model = self._load(rental_id)
        if expected_version is not None and model.version != expected_version:
            raise ConflictError(
                self.entity_type, str(rental_id), expected_version, model.version
            )
        return model

    def _next_mutation_sequence(self, rental_id: UUID) -> int:
        count = self.session.scalar(
            select(func.count())
            .select_from(LedgerMutationModel)
            .where(LedgerMutationModel.rental_id == rental_id)
        )
        return int(count or 0)

    def _mutate(
        self,
        rental_id: UUID,
        actor_id: UUID,
        expected_version: int | None,
        event: str,
        operation: Callable[[Rental], LedgerMutation],
    ) -> LedgerMutation:
        with LogContext.bind(rental_id=rental_id, actor_id=actor_id):
            with self._locks.hold(("rental", rental_id)):
                model = self._load_for_update(rental_id, expected_version)
                sequence = self._next_mutation_sequence(rental_id)
                try:
                    mutation = operation(model.to_dto())
                except ValidationError as e:
                    logger.warning(
                        "rental_mutation_rejected",
                        extra={"event": event, "reason": e.reason, "field": e.field},
                    )
                    raise

                self._apply(model, mutation.rental, actor_id)
                self.session.add(
                    LedgerMutationModel.from_mutation(
                        mutation, actor_id, sequence=sequence
                    )
                )
                self._flush(rental_id)

                logger.info(
                    event,
                    extra={
                        "kind": mutation.kind.value,
                        "old_total": str(mutation.old_total),
                        "new_total": str(mutation.new_total),
                        "price_delta": str(mutation.price_delta),
                        "segment_count": len(mutation.rental.segments),
                    },
                )
                return replace(
                    mutation, rental=replace(mutation.rental, version=model.version)
                )

    def _transition(
        self,
        rental_id: UUID,
        actor_id: UUID,
        expected_version: int | None,
        operation: Callable[[Rental], Rental],
    ) -> Rental:
        with LogContext.bind(rental_id=rental_id, actor_id=actor_id):
            with self._locks.hold(("rental", rental_id)):
                model = self._load_for_update(rental_id, expected_version)
                before = model.to_dto()
                try:
                    rental = operation(before)
                except ValidationError as e:
                    logger.warning(
                        "rental_transition_rejected",
                        extra={
                            "status": before.status.value,
                            "reason": e.reason,
                            "field": e.field,
                        },
                    )
                    raise

                self._apply(model, rental, actor_id)
                self._flush(rental_id)
                return replace(rental, version=model.version)

    def _apply(self, model: RentalModel, rental: Rental, actor_id: UUID) -> None:
        """Write a rental value onto its rows and force a version bump."""
        model.status = rental.status.value
        model.updated_by_id = actor_id
        if rental.settlement is not None:
            model.final_payment = rental.settlement.final_payment
            model.client_rating = rental.settlement.rating
            model.settlement_note = rental.settlement.note

        rows = {row.id: row for row in model.segments}
        for segment in rental.segments:
            row = rows.get(segment.id)
            if row is None:
                row = PricingSegmentModel(
                    id=segment.id,
                    rental_id=rental.id,
                    created_by_id=actor_id,
                )
                model.segments.append(row)
            elif row.to_dto() == segment:
                continue
            else:
                row.updated_by_id = actor_id
            row.sequence = segment.sequence
            row.start_date = segment.start_date
            row.end_date = segment.end_date
            row.origin = segment.origin.value
            row.vehicle_id = segment.vehicle_id
            row.apply_pricing(segment.pricing)

        for index in range(len(model.payments), len(rental.payments)):
            payment = rental.payments[index]
            model.payments.append(
                RentalPaymentModel(
                    rental_id=rental.id,
                    sequence=index,
                    amount=payment.amount,
                    paid_on=payment.paid_on,
                    note=payment.note,
                    created_by_id=actor_id,
                )
            )

        # Child-only changes must still advance the rental's version.
        if model.version is not None:
            flag_modified(model, "status")
