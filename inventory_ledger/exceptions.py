"""
Typed Exception Hierarchy for the Inventory Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations fail for a small number of well-defined reasons, and callers
react to each differently: an oversell attempt is shown to the user with the
shortage, a numbering conflict is retried, an immutability violation is a
security alert.  Parsing message strings for that is fragile.

Every exception therefore has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        recorder.record_sale(product_id, qty, order_id, invoice_date, actor_id)
    except InsufficientStockError as e:
        api_response(
            code=e.code,
            requested=e.requested,
            available=e.available,
            shortage=e.shortage,
        )

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryLedgerError (base)
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- LedgerRowNotFoundError
    |   +-- SampleNotFoundError
    |   +-- RepackingNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- InvalidOperationError
    |   +-- InvalidQuantityError
    |   +-- InvalidRepackingError
    |   +-- ReversalExceedsReservedError
    |   +-- NegativeAccumulatorError
    |   +-- SampleStateError
    |   +-- ProductInactiveError
    |   +-- LedgerRowExistsError
    |   +-- LedgerRowInUseError
    |
    +-- ConcurrencyError
    |   +-- TransactionNumberConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- LedgerStorageError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Not found       | PRODUCT_NOT_FOUND             | Product reference has no such product
                | LEDGER_ROW_NOT_FOUND          | No ledger row for product/date
                | SAMPLE_NOT_FOUND              | Sample tracking record missing
                | REPACKING_NOT_FOUND           | Repacking record missing
----------------|-------------------------------|---------------------------------------
Stock           | INSUFFICIENT_STOCK            | Closing stock below requested quantity
----------------|-------------------------------|---------------------------------------
Invalid op      | INVALID_QUANTITY              | Zero, negative or malformed quantity
                | INVALID_REPACKING             | Bad source/target quantities/products
                | REVERSAL_EXCEEDS_RESERVED     | Reversing more than was reserved
                | NEGATIVE_ACCUMULATOR          | Accumulator would drop below zero
                | SAMPLE_STATE_INVALID          | Sample not in a state allowing the op
                | PRODUCT_INACTIVE              | Product is deactivated
                | LEDGER_ROW_EXISTS             | Initial row already registered
                | LEDGER_ROW_IN_USE             | Retiring a row with movements or stock
----------------|-------------------------------|---------------------------------------
Concurrency     | TRANSACTION_NUMBER_CONFLICT   | Numbering collision after all retries
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Modifying/deleting history
----------------|-------------------------------|---------------------------------------
Storage         | LEDGER_STORAGE_ERROR          | Unexpected database failure (fatal)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Every error aborts the whole unit of work.  There are no partial writes
   to roll forward from, so callers never need compensation logic.

2. ConcurrencyError is only raised AFTER the recorder's internal retries are
   exhausted.  Callers may retry the operation again at their discretion.

3. LedgerStorageError always chains the underlying SQLAlchemy exception
   (``raise ... from exc``) so the original cause survives in logs.

===============================================================================
"""

from datetime import date
from decimal import Decimal


class InventoryLedgerError(Exception):
    """
    Base exception for all inventory ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_LEDGER_ERROR"

    def details(self) -> dict:
        """Structured attributes set by the subclass, keyed by name."""
        return {key: value for key, value in vars(self).items() if not key.startswith("_")}


# Not-found exceptions


class NotFoundError(InventoryLedgerError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product does not exist in the product reference."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class LedgerRowNotFoundError(NotFoundError):
    """No ledger row exists for the product on the business date."""

    code: str = "LEDGER_ROW_NOT_FOUND"

    def __init__(self, product_id: int, business_date: date):
        self.product_id = product_id
        self.business_date = business_date
        super().__init__(
            f"No ledger row for product {product_id} on {business_date.isoformat()}"
        )


class SampleNotFoundError(NotFoundError):
    """Sample tracking record not found."""

    code: str = "SAMPLE_NOT_FOUND"

    def __init__(self, sample_tracking_id: int):
        self.sample_tracking_id = sample_tracking_id
        super().__init__(f"Sample tracking record not found: {sample_tracking_id}")


class RepackingNotFoundError(NotFoundError):
    """Repacking record not found."""

    code: str = "REPACKING_NOT_FOUND"

    def __init__(self, repacking_id: int):
        self.repacking_id = repacking_id
        super().__init__(f"Repacking record not found: {repacking_id}")


# Stock exceptions


class InsufficientStockError(InventoryLedgerError):
    """
    Requested quantity exceeds the closing stock of the business date.

    Carries the figures the caller needs to explain the rejection without
    re-reading the ledger.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: int,
        business_date: date,
        requested: Decimal,
        available: Decimal,
    ):
        self.product_id = product_id
        self.business_date = business_date
        self.requested = requested
        self.available = available
        self.shortage = max(Decimal("0"), requested - available)
        super().__init__(
            f"Insufficient stock for product {product_id} on "
            f"{business_date.isoformat()}: requested {requested}, "
            f"available {available}, shortage {self.shortage}"
        )


# Invalid-operation exceptions


class InvalidOperationError(InventoryLedgerError):
    """Base exception for requests that violate a business precondition."""

    code: str = "INVALID_OPERATION"


class InvalidQuantityError(InvalidOperationError):
    """Quantity is zero, negative, or not representable at ledger precision."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidRepackingError(InvalidOperationError):
    """Repacking request cannot produce a valid conversion."""

    code: str = "INVALID_REPACKING"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid repacking: {reason}")


class ReversalExceedsReservedError(InvalidOperationError):
    """Sale reversal quantity is larger than the reserved quantity of the day."""

    code: str = "REVERSAL_EXCEEDS_RESERVED"

    def __init__(
        self,
        product_id: int,
        business_date: date,
        requested: Decimal,
        reserved: Decimal,
    ):
        self.product_id = product_id
        self.business_date = business_date
        self.requested = requested
        self.reserved = reserved
        super().__init__(
            f"Cannot reverse {requested} for product {product_id} on "
            f"{business_date.isoformat()}: only {reserved} reserved"
        )


class NegativeAccumulatorError(InvalidOperationError):
    """A movement accumulator would drop below zero."""

    code: str = "NEGATIVE_ACCUMULATOR"

    def __init__(self, product_id: int, business_date: date, column: str, value: Decimal):
        self.product_id = product_id
        self.business_date = business_date
        self.column = column
        self.value = value
        super().__init__(
            f"{column} for product {product_id} on {business_date.isoformat()} "
            f"would become {value}"
        )


class SampleStateError(InvalidOperationError):
    """Sample is not in a status that allows the requested transition."""

    code: str = "SAMPLE_STATE_INVALID"

    def __init__(self, sample_tracking_id: int, status: str, operation: str):
        self.sample_tracking_id = sample_tracking_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} sample {sample_tracking_id} in status '{status}'"
        )


class ProductInactiveError(InvalidOperationError):
    """Product exists but is deactivated."""

    code: str = "PRODUCT_INACTIVE"

    def __init__(self, product_id: int, product_code: str):
        self.product_id = product_id
        self.product_code = product_code
        super().__init__(f"Product {product_code} ({product_id}) is inactive")


class LedgerRowExistsError(InvalidOperationError):
    """An initial ledger row was registered for a product/date that already has one."""

    code: str = "LEDGER_ROW_EXISTS"

    def __init__(self, product_id: int, business_date: date):
        self.product_id = product_id
        self.business_date = business_date
        super().__init__(
            f"Ledger row already exists for product {product_id} on "
            f"{business_date.isoformat()}"
        )


class LedgerRowInUseError(InvalidOperationError):
    """A ledger row with recorded movements, or one that carries stock, cannot be retired."""

    code: str = "LEDGER_ROW_IN_USE"

    def __init__(self, product_id: int, business_date: date, reason: str):
        self.product_id = product_id
        self.business_date = business_date
        self.reason = reason
        super().__init__(
            f"Cannot retire ledger row of product {product_id} on "
            f"{business_date.isoformat()}: {reason}"
        )


# Concurrency exceptions


class ConcurrencyError(InventoryLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class TransactionNumberConflictError(ConcurrencyError):
    """
    Unit of work kept colliding on a unique key after every retry.

    The caller may retry the whole operation later.
    """

    code: str = "TRANSACTION_NUMBER_CONFLICT"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} failed after {attempts} attempts due to "
            "conflicting concurrent writes"
        )


# Immutability exceptions


class ImmutabilityError(InventoryLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Inventory transactions are append-only; ledger rows are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Storage exceptions


class LedgerStorageError(InventoryLedgerError):
    """Unexpected storage failure.  Fatal for the current unit of work."""

    code: str = "LEDGER_STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")
