"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements fail for a handful of precise reasons, and callers react to
each one differently: fix the input, pick another product, re-check stock,
or give up on a broken store. Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        coordinator.issue("ZR001", 5, lot_number="LOT1")
    except InsufficientStockError as e:
        notify(f"only {e.available} left of {e.product_code}")
    except ConflictError as e:
        api_response(status=409, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- InventoryValidationError        rejected before any storage access
    |   +-- InvalidQuantityError
    |   +-- InvalidDateError
    |
    +-- NotFoundError                   no storage mutation occurred
    |   +-- UnknownProductError
    |   +-- MovementNotFoundError
    |
    +-- ConflictError                   no storage mutation occurred
    |   +-- InsufficientStockError
    |   +-- ConcurrencyConflictError
    |   +-- IdempotencyKeyReusedError
    |
    +-- StorageError                    fatal, not retried
    |   +-- TransactionTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                    | When Raised
-------------|-------------------------|-------------------------------------------
Validation   | VALIDATION_FAILED       | Malformed movement or query input
             | INVALID_QUANTITY        | Quantity not a positive integer
             | INVALID_DATE            | Expiration date not YYYY-MM-DD / bad range
-------------|-------------------------|-------------------------------------------
Not found    | UNKNOWN_PRODUCT         | Product directory does not know the code
             | MOVEMENT_NOT_FOUND      | Movement ID does not exist
-------------|-------------------------|-------------------------------------------
Conflict     | INSUFFICIENT_STOCK      | OUT larger than the current balance
             | CONCURRENCY_CONFLICT    | Retry bound exhausted on a contended key
             | IDEMPOTENCY_KEY_REUSED  | Same key submitted with another request
-------------|-------------------------|-------------------------------------------
Storage      | STORAGE_ERROR           | Non-transient database failure
             | TRANSACTION_TIMEOUT     | Write transaction exceeded its duration
-------------|-------------------------|-------------------------------------------
Immutability | IMMUTABILITY_VIOLATION  | UPDATE/DELETE of a movement, DELETE or
             |                         | ad hoc ORM update of a balance

Transports map the categories: InventoryValidationError -> 400,
NotFoundError -> 404 (UnknownProductError -> 400 on submission),
ConflictError -> 409, StorageError -> 503.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from inventory_kernel.domain.validation import FieldError


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Validation exceptions


class InventoryValidationError(InventoryKernelError):
    """One or more input fields failed the pre-flight guard."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, errors: tuple[FieldError, ...] | list[FieldError]):
        self.errors = tuple(errors)
        summary = "; ".join(
            f"{e.field or '<request>'}: {e.message}" for e in self.errors
        )
        super().__init__(f"Validation failed ({len(self.errors)} error(s)): {summary}")

    @property
    def fields(self) -> tuple[str, ...]:
        """Names of the offending fields, in guard order."""
        return tuple(e.field for e in self.errors if e.field)


class InvalidQuantityError(InventoryValidationError):
    """Quantity is not a strictly positive integer (or an adjustment is zero)."""

    code: str = "INVALID_QUANTITY"


class InvalidDateError(InventoryValidationError):
    """A date field is malformed or a date range is inverted."""

    code: str = "INVALID_DATE"


# Not-found exceptions


class NotFoundError(InventoryKernelError):
    """Base exception for lookups of things that do not exist."""

    code: str = "NOT_FOUND"


class UnknownProductError(NotFoundError):
    """The product directory does not know this product code."""

    code: str = "UNKNOWN_PRODUCT"

    def __init__(self, product_code: str):
        self.product_code = product_code
        super().__init__(f"Unknown product: {product_code}")


class MovementNotFoundError(NotFoundError):
    """Movement with given ID was not found."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


# Conflict exceptions


class ConflictError(InventoryKernelError):
    """
    Base exception for business conflicts.

    No storage mutation occurred. The caller may retry the business
    operation after re-checking stock, but must not blindly resubmit
    identical parameters forever.
    """

    code: str = "CONFLICT"


class InsufficientStockError(ConflictError):
    """An OUT movement asked for more than the current balance."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_code: str,
        lot_number: str | None,
        expiration_date: Any,
        available: int,
        requested: int,
    ):
        self.product_code = product_code
        self.lot_number = lot_number
        self.expiration_date = expiration_date
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_code} "
            f"(lot={lot_number}, expires={expiration_date}): "
            f"available {available}, requested {requested}"
        )


class ConcurrencyConflictError(ConflictError):
    """Lost the version race on every allowed attempt."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, balance_key: str, attempts: int):
        self.balance_key = balance_key
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of balance {balance_key}: "
            f"gave up after {attempts} attempt(s)"
        )


class IdempotencyKeyReusedError(ConflictError):
    """
    Idempotency key already used for a different movement request.

    A replay must repeat the original request exactly.
    """

    code: str = "IDEMPOTENCY_KEY_REUSED"

    def __init__(
        self,
        idempotency_key: str,
        movement_id: str,
        expected_hash: str,
        received_hash: str,
    ):
        self.idempotency_key = idempotency_key
        self.movement_id = movement_id
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {idempotency_key!r} already recorded movement "
            f"{movement_id} with a different request"
        )


# Storage exceptions


class StorageError(InventoryKernelError):
    """Non-transient storage failure. The transaction was rolled back."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage failure during {operation}: {reason}")


class TransactionTimeoutError(StorageError):
    """A write transaction ran past its maximum duration."""

    code: str = "TRANSACTION_TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float, elapsed_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        elapsed = "" if elapsed_seconds is None else f" after {elapsed_seconds:.3f}s"
        super().__init__(
            operation,
            f"transaction exceeded {timeout_seconds}s limit{elapsed}",
        )


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Movements and idempotency records are append-only. Balances are never
    deleted and only change through BalanceStore.conditional_write.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
