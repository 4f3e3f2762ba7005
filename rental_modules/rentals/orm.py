"""
Module: rental_modules.rentals.orm
Responsibility:
    SQLAlchemy ORM persistence models for short-term rentals.  Maps the
    frozen dataclasses of ``rental_modules.rentals.models`` to tables.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.

Invariants enforced:
    - Segments persist pricing INPUTS only (mode, per-day terms, lump
      discount, fees, manual total and the terms it was agreed at).  No
      segment or rental total column exists; totals are recomputed in ``to_dto``.
    - ``RentalModel.version`` is the SQLAlchemy ``version_id_col``: an
      UPDATE based on a stale read fails with ``StaleDataError``.
    - Enum fields stored as String(50).

Failure modes:
    - IntegrityError on duplicate (rental_id, sequence).
    - StaleDataError on a concurrent write (translated by the service).

Audit relevance:
    - LedgerMutationModel is an append-only trail of every ledger
      operation with old total, new total and delta.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString


# =============================================================================
# Rental
# =============================================================================


class RentalModel(TrackedBase):
    """
    A short-term rental.

    Guarantees:
        - ``status`` is one of: pending, confirmed, active, completed,
          cancelled.
        - ``version`` increases by one on every UPDATE.
        - Settlement columns are set together when status becomes completed.
    """

    __tablename__ = "rental_rentals"

    __table_args__ = (
        Index("idx_rental_client", "client_id"),
        Index("idx_rental_status", "status"),
    )

    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    final_payment: Mapped[Decimal | None] = mapped_column(nullable=True)
    client_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    settlement_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    segments: Mapped[list["PricingSegmentModel"]] = relationship(
        "PricingSegmentModel",
        back_populates="rental",
        cascade="all, delete-orphan",
        order_by="PricingSegmentModel.sequence",
        lazy="selectin",
    )
    payments: Mapped[list["RentalPaymentModel"]] = relationship(
        "RentalPaymentModel",
        back_populates="rental",
        cascade="all, delete-orphan",
        order_by="RentalPaymentModel.sequence",
        lazy="selectin",
    )

    def to_dto(self):
        from rental_modules.rentals.models import Rental, RentalStatus, Settlement

        settlement = None
        if self.status == RentalStatus.COMPLETED.value:
            settlement = Settlement(
                final_payment=self.final_payment or Decimal("0"),
                rating=self.client_rating,
                note=self.settlement_note,
            )

        return Rental(
            id=self.id,
            client_id=self.client_id,
            status=RentalStatus(self.status),
            segments=tuple(s.to_dto() for s in self.segments),
            payments=tuple(p.to_dto() for p in self.payments),
            settlement=settlement,
            version=self.version,
        )


# =============================================================================
# Pricing segment
# =============================================================================


class PricingSegmentModel(TrackedBase):
    """
    One pricing segment of a rental.

    Guarantees:
        - (rental_id, sequence) is unique.
        - ``pricing_mode`` = formula: price_per_day, discount_per_day,
          discount and fees are set; manual_total is NULL.
        - ``pricing_mode`` = manual: manual_total is set, plus agreed_total
          and agreed_days on a segment cut short by a vehicle change.
    """

    __tablename__ = "rental_pricing_segments"

    __table_args__ = (
        UniqueConstraint("rental_id", "sequence", name="uq_segment_rental_sequence"),
        Index("idx_segment_rental", "rental_id"),
        Index("idx_segment_vehicle", "vehicle_id"),
    )

    rental_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_rentals.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    origin: Mapped[str] = mapped_column(String(50), nullable=False, default="initial")
    vehicle_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    pricing_mode: Mapped[str] = mapped_column(String(50), nullable=False)
    price_per_day: Mapped[Decimal | None] = mapped_column(nullable=True)
    discount_per_day: Mapped[Decimal | None] = mapped_column(nullable=True)
    discount: Mapped[Decimal | None] = mapped_column(nullable=True)
    fees: Mapped[list | None] = mapped_column(JSON, nullable=True)
    manual_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    agreed_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    agreed_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    rental: Mapped["RentalModel"] = relationship(
        "RentalModel",
        back_populates="segments",
    )

    def apply_pricing(self, basis) -> None:
        """Copy the inputs of a pricing basis onto the row."""
        from rental_engines.segment_pricing import FormulaPricing

        self.pricing_mode = basis.mode.value
        if isinstance(basis, FormulaPricing):
            self.price_per_day = basis.price_per_day
            self.discount_per_day = basis.discount_per_day
            self.discount = basis.discount
            self.fees = [{"label": f.label, "amount": str(f.amount)} for f in basis.fees]
            self.manual_total = None
            self.agreed_total = None
            self.agreed_days = None
        else:
            self.price_per_day = None
            self.discount_per_day = None
            self.discount = None
            self.fees = None
            self.manual_total = basis.manual_total
            self.agreed_total = basis.agreed_total
            self.agreed_days = basis.agreed_days

    def pricing_basis(self):
        from rental_engines.segment_pricing import (
            Fee,
            FormulaPricing,
            ManualPricing,
            PricingMode,
        )

        if self.pricing_mode == PricingMode.MANUAL.value:
            return ManualPricing(
                manual_total=self.manual_total,
                agreed_total=self.agreed_total,
                agreed_days=self.agreed_days,
            )
        return FormulaPricing(
            price_per_day=self.price_per_day,
            discount_per_day=self.discount_per_day or Decimal("0"),
            discount=self.discount or Decimal("0"),
            fees=tuple(
                Fee(label=f["label"], amount=Decimal(f["amount"])) for f in (self.fees or [])
            ),
        )

    def to_dto(self):
        from rental_modules.rentals.models import PricingSegment, SegmentOrigin

        return PricingSegment(
            id=self.id,
            rental_id=self.rental_id,
            sequence=self.sequence,
            start_date=self.start_date,
            end_date=self.end_date,
            pricing=self.pricing_basis(),
            vehicle_id=self.vehicle_id,
            origin=SegmentOrigin(self.origin),
        )


# =============================================================================
# Payments
# =============================================================================


class RentalPaymentModel(TrackedBase):
    """A payment received against a rental (append-only)."""

    __tablename__ = "rental_payments"

    __table_args__ = (
        UniqueConstraint("rental_id", "sequence", name="uq_rental_payment_sequence"),
        Index("idx_rental_payment_rental", "rental_id"),
    )

    rental_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_rentals.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    rental: Mapped["RentalModel"] = relationship(
        "RentalModel",
        back_populates="payments",
    )

    def to_dto(self):
        from rental_modules.rentals.models import RentalPayment

        return RentalPayment(amount=self.amount, paid_on=self.paid_on, note=self.note)


# =============================================================================
# Ledger mutation trail
# =============================================================================


class LedgerMutationModel(TrackedBase):
    """
    Audit entry for one ledger operation.

    Guarantees:
        - Rows are inserted, never updated.
        - ``price_delta`` = ``new_total`` - ``old_total``.
    """

    __tablename__ = "rental_ledger_mutations"

    __table_args__ = (
        UniqueConstraint("rental_id", "sequence", name="uq_ledger_mutation_sequence"),
        Index("idx_ledger_mutation_rental", "rental_id"),
    )

    rental_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_rentals.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    old_total: Mapped[Decimal] = mapped_column(nullable=False)
    new_total: Mapped[Decimal] = mapped_column(nullable=False)
    price_delta: Mapped[Decimal] = mapped_column(nullable=False)
    created_segment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    finalized_segment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @classmethod
    def from_mutation(
        cls, mutation, actor_id: UUID, sequence: int
    ) -> "LedgerMutationModel":
        return cls(
            rental_id=mutation.rental.id,
            sequence=sequence,
            kind=mutation.kind.value,
            old_total=mutation.old_total,
            new_total=mutation.new_total,
            price_delta=mutation.price_delta,
            created_segment_id=(
                mutation.created_segment.id if mutation.created_segment else None
            ),
            finalized_segment_id=(
                mutation.finalized_segment.id if mutation.finalized_segment else None
            ),
            created_by_id=actor_id,
        )

    def to_dto(self):
        from rental_modules.rentals.models import LedgerMutationRecord, MutationKind

        return LedgerMutationRecord(
            id=self.id,
            rental_id=self.rental_id,
            kind=MutationKind(self.kind),
            old_total=self.old_total,
            new_total=self.new_total,
            price_delta=self.price_delta,
            created_segment_id=self.created_segment_id,
            finalized_segment_id=self.finalized_segment_id,
            actor_id=self.created_by_id,
        )
