"""
Typed Exception Hierarchy for the Rental Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Billing errors must be handled precisely. Callers catch by type and read
structured attributes; they never parse message strings.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (reason, field, ids) as attributes

Example - RIGHT way:
    try:
        service.extend(rental_id, new_end_date, basis, actor_id)
    except ValidationError as e:
        api_response(code=e.code, reason=e.reason, field=e.field)
    except ConflictError:
        reload_and_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RentalKernelError (base)
    |
    +-- ValidationError
    |
    +-- LifecycleError
    |   +-- InvalidStatusTransitionError
    |   +-- LedgerMutationNotAllowedError
    |
    +-- LedgerInvariantError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- NotFoundError
        +-- RentalNotFoundError
        +-- ContractNotFoundError
        +-- InvoiceNotFoundError
        +-- VehicleNotOnContractError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|----------------------------------
Validation   | VALIDATION_ERROR             | Bad input, rejected before mutation
Lifecycle    | INVALID_STATUS_TRANSITION    | Transition not in the workflow
             | LEDGER_MUTATION_NOT_ALLOWED  | Extend/change outside ``active``
Ledger       | LEDGER_INVARIANT_VIOLATION   | Contiguity / day-sum / total broken
Concurrency  | CONFLICT                     | Stale version; reload and retry
Not found    | RENTAL_NOT_FOUND             | Unknown rental id
             | CONTRACT_NOT_FOUND           | Unknown long-term contract id
             | INVOICE_NOT_FOUND            | Unknown invoice id on a contract
             | VEHICLE_NOT_ON_CONTRACT      | Vehicle not attached to contract

===============================================================================
VALIDATION REASONS
===============================================================================

ValidationError.reason is a stable snake_case token:

    negative_days, negative_price, price_out_of_band,
    new_end_date_not_after_current_end, change_date_out_of_range,
    vehicle_required, same_vehicle, settlement_required, invalid_rating,
    invalid_payment_amount, invalid_cycle_days, invalid_date_range,
    vehicle_already_on_contract, contract_closed

===============================================================================
"""


class RentalKernelError(Exception):
    """
    Base exception for all rental kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RENTAL_KERNEL_ERROR"


# Validation


class ValidationError(RentalKernelError):
    """
    Input rejected before any state was touched.

    Attributes:
        reason: Stable snake_case token (see module docstring).
        field: Name of the offending input, when there is one.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, reason: str, field: str | None = None, detail: str | None = None):
        self.reason = reason
        self.field = field
        self.detail = detail
        message = f"Validation failed: {reason}"
        if field:
            message += f" (field={field})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


# Lifecycle


class LifecycleError(RentalKernelError):
    """Base exception for rental status errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidStatusTransitionError(LifecycleError):
    """Requested status change is not a transition of the rental workflow."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, rental_id: str, from_status: str, to_status: str):
        self.rental_id = rental_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Rental {rental_id} cannot move from {from_status} to {to_status}"
        )


class LedgerMutationNotAllowedError(LifecycleError):
    """Ledger mutation attempted while the rental status forbids it."""

    code: str = "LEDGER_MUTATION_NOT_ALLOWED"

    def __init__(self, rental_id: str, status: str, operation: str):
        self.rental_id = rental_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Operation '{operation}' is not allowed on rental {rental_id} "
            f"while status is {status}"
        )


# Ledger


class LedgerInvariantError(RentalKernelError):
    """
    A segment ledger failed structural verification.

    Raised by the ledger after computing a mutation and before returning it,
    so a broken ledger never reaches persistence.
    """

    code: str = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, rental_id: str, invariant: str, detail: str):
        self.rental_id = rental_id
        self.invariant = invariant
        self.detail = detail
        super().__init__(
            f"Ledger invariant '{invariant}' violated on rental {rental_id}: {detail}"
        )


# Concurrency


class ConcurrencyError(RentalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """Entity was modified by another writer; caller must reload and retry."""

    code: str = "CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        message = (
            f"Concurrent modification of {entity_type} {entity_id}: "
            "reload and retry"
        )
        if expected_version is not None:
            message += f" (expected version {expected_version}, found {actual_version})"
        super().__init__(message)


# Lookup


class NotFoundError(RentalKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class RentalNotFoundError(NotFoundError):
    """Rental with given ID was not found."""

    code: str = "RENTAL_NOT_FOUND"

    def __init__(self, rental_id: str):
        self.rental_id = rental_id
        super().__init__(f"Rental not found: {rental_id}")


class ContractNotFoundError(NotFoundError):
    """Long-term contract with given ID was not found."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Long-term contract not found: {contract_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice does not exist on the given contract."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, contract_id: str, invoice_id: str):
        self.contract_id = contract_id
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found on contract {contract_id}")


class VehicleNotOnContractError(NotFoundError):
    """Vehicle is not (or no longer) attached to the contract."""

    code: str = "VEHICLE_NOT_ON_CONTRACT"

    def __init__(self, contract_id: str, vehicle_id: str):
        self.contract_id = contract_id
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} is not active on contract {contract_id}")
