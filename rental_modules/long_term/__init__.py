"""Long-term lease contracts: cycle scheduling, invoicing and collection."""

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
    PaymentCycle,
)
from rental_modules.long_term.scheduler import (
    CyclePeriod,
    LongTermContractScheduler,
    add_vehicle,
    allocate_payment,
    close_contract,
    cycle_period,
    invoice_severity,
    issue_invoices,
    next_due_date,
    overdue_status,
    recompute_future_invoices,
    remaining_to_pay,
    remove_vehicle,
)
from rental_modules.long_term.service import LongTermContractService, VehicleTerms

__all__ = [
    "ContractPayment",
    "ContractStatement",
    "ContractVehicle",
    "Invoice",
    "InvoiceLine",
    "InvoiceSeverity",
    "InvoiceStatus",
    "LongTermContract",
    "OverdueStatus",
    "PaymentAllocation",
    "PaymentCycle",
    "CyclePeriod",
    "LongTermContractScheduler",
    "add_vehicle",
    "allocate_payment",
    "close_contract",
    "cycle_period",
    "invoice_severity",
    "issue_invoices",
    "next_due_date",
    "overdue_status",
    "recompute_future_invoices",
    "remaining_to_pay",
    "remove_vehicle",
    "LongTermContractService",
    "VehicleTerms",
]
