"""
Module: rental_modules.long_term.orm
Responsibility:
    SQLAlchemy ORM persistence models for long-term lease contracts:
    contracts, their vehicle assignments, issued invoices and payments.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.

Invariants enforced:
    - ``LongTermContractModel.version`` is the ``version_id_col``.
    - (contract_id, cycle_index) is unique: a cycle is invoiced once.
    - Invoice amounts (ht, tva, ttc) are stored as issued.  Only pending
      invoices of cycles not yet started are ever rewritten.

Failure modes:
    - IntegrityError on a duplicate cycle index.
    - StaleDataError on a concurrent write (translated by the service).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString


class LongTermContractModel(TrackedBase):
    """
    A long-term lease contract.

    Guarantees:
        - ``payment_cycle_days`` >= 1.
        - ``closed_on`` is NULL while the contract is open.
    """

    __tablename__ = "long_term_contracts"

    __table_args__ = (Index("idx_long_term_client", "client_id"),)

    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_cycle_days: Mapped[int] = mapped_column(Integer, nullable=False)
    pro_rata_first_month: Mapped[bool] = mapped_column(Boolean, default=False)
    credit_balance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    closed_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    vehicles: Mapped[list["ContractVehicleModel"]] = relationship(
        "ContractVehicleModel",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractVehicleModel.active_from",
        lazy="selectin",
    )
    invoices: Mapped[list["ContractInvoiceModel"]] = relationship(
        "ContractInvoiceModel",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractInvoiceModel.cycle_index",
        lazy="selectin",
    )
    payments: Mapped[list["ContractPaymentModel"]] = relationship(
        "ContractPaymentModel",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractPaymentModel.sequence",
        lazy="selectin",
    )

    def to_dto(self):
        from rental_modules.long_term.models import LongTermContract

        return LongTermContract(
            id=self.id,
            client_id=self.client_id,
            start_date=self.start_date,
            payment_cycle_days=self.payment_cycle_days,
            pro_rata_first_month=bool(self.pro_rata_first_month),
            vehicles=tuple(v.to_dto() for v in self.vehicles),
            invoices=tuple(i.to_dto() for i in self.invoices),
            payments=tuple(p.to_dto() for p in self.payments),
            credit_balance=self.credit_balance,
            closed_on=self.closed_on,
            version=self.version,
        )


class ContractVehicleModel(TrackedBase):
    """A vehicle assignment on a contract during [active_from, active_to)."""

    __tablename__ = "long_term_contract_vehicles"

    __table_args__ = (
        Index("idx_contract_vehicle_contract", "contract_id"),
        Index("idx_contract_vehicle_vehicle", "vehicle_id"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("long_term_contracts.id"),
        nullable=False,
    )
    vehicle_id: Mapped[str] = mapped_column(String(100), nullable=False)
    monthly_price: Mapped[Decimal] = mapped_column(nullable=False)
    price_input_type: Mapped[str] = mapped_column(String(10), nullable=False)
    active_from: Mapped[date] = mapped_column(Date, nullable=False)
    active_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    contract: Mapped["LongTermContractModel"] = relationship(
        "LongTermContractModel",
        back_populates="vehicles",
    )

    def to_dto(self):
        from rental_engines.tax import TaxBasis
        from rental_modules.long_term.models import ContractVehicle

        return ContractVehicle(
            id=self.id,
            vehicle_id=self.vehicle_id,
            monthly_price=self.monthly_price,
            price_input_type=TaxBasis(self.price_input_type),
            active_from=self.active_from,
            active_to=self.active_to,
        )


class ContractInvoiceModel(TrackedBase):
    """
    An invoice for one payment cycle.

    Guarantees:
        - ``ht`` + ``tva`` = ``ttc``.
        - ``lines`` holds one entry per billed vehicle.
    """

    __tablename__ = "long_term_invoices"

    __table_args__ = (
        UniqueConstraint("contract_id", "cycle_index", name="uq_invoice_contract_cycle"),
        Index("idx_invoice_contract", "contract_id"),
        Index("idx_invoice_status_due", "status", "due_date"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("long_term_contracts.id"),
        nullable=False,
    )
    cycle_index: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    ht: Mapped[Decimal] = mapped_column(nullable=False)
    tva: Mapped[Decimal] = mapped_column(nullable=False)
    ttc: Mapped[Decimal] = mapped_column(nullable=False)
    lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    is_prorated: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    contract: Mapped["LongTermContractModel"] = relationship(
        "LongTermContractModel",
        back_populates="invoices",
    )

    def apply(self, invoice) -> None:
        """Copy an invoice value onto the row."""
        self.cycle_index = invoice.cycle_index
        self.period_start = invoice.period_start
        self.period_end = invoice.period_end
        self.due_date = invoice.due_date
        self.ht = invoice.amount_due.ht
        self.tva = invoice.amount_due.tva
        self.ttc = invoice.amount_due.ttc
        self.lines = [
            {
                "vehicle_id": line.vehicle_id,
                "ht": str(line.amount.ht),
                "tva": str(line.amount.tva),
                "ttc": str(line.amount.ttc),
            }
            for line in invoice.lines
        ]
        self.status = invoice.status.value
        self.amount_paid = invoice.amount_paid
        self.is_prorated = invoice.is_prorated
        self.paid_on = invoice.paid_on

    def to_dto(self):
        from rental_engines.tax import TaxBreakdown
        from rental_modules.long_term.models import Invoice, InvoiceLine, InvoiceStatus

        return Invoice(
            id=self.id,
            contract_id=self.contract_id,
            cycle_index=self.cycle_index,
            period_start=self.period_start,
            period_end=self.period_end,
            due_date=self.due_date,
            amount_due=TaxBreakdown(ht=self.ht, tva=self.tva, ttc=self.ttc),
            lines=tuple(
                InvoiceLine(
                    vehicle_id=line["vehicle_id"],
                    amount=TaxBreakdown(
                        ht=Decimal(line["ht"]),
                        tva=Decimal(line["tva"]),
                        ttc=Decimal(line["ttc"]),
                    ),
                )
                for line in (self.lines or [])
            ),
            status=InvoiceStatus(self.status),
            amount_paid=self.amount_paid,
            is_prorated=bool(self.is_prorated),
            paid_on=self.paid_on,
        )


class ContractPaymentModel(TrackedBase):
    """A payment received on a contract (append-only)."""

    __tablename__ = "long_term_payments"

    __table_args__ = (
        UniqueConstraint("contract_id", "sequence", name="uq_contract_payment_sequence"),
        Index("idx_contract_payment_contract", "contract_id"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("long_term_contracts.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_on: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    contract: Mapped["LongTermContractModel"] = relationship(
        "LongTermContractModel",
        back_populates="payments",
    )

    def to_dto(self):
        from rental_modules.long_term.models import ContractPayment

        return ContractPayment(
            id=self.id,
            amount=self.amount,
            paid_on=self.paid_on,
            invoice_id=self.invoice_id,
        )
