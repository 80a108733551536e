"""
Typed exception hierarchy for the invoice kernel.

Every error raised by the kernel is a subclass of ``InvoiceKernelError`` and
carries:

  1. a TYPED class, so callers catch by type instead of parsing messages,
  2. a class-level ``code`` attribute (machine-readable, API-safe),
  3. structured attributes describing the failure.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InvoiceKernelError (base)
    |
    +-- InvoiceStateError
    |   +-- AlreadyCommittedError
    |   +-- InvalidStateError
    |
    +-- TaxError
    |   +-- UnknownTaxRateError
    |
    +-- NotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- RegisterNotFoundError
    |
    +-- ConcurrencyError
    |   +-- RegisterLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES
===============================================================================

Category      | Code                  | When Raised
--------------|-----------------------|------------------------------------------
State         | ALREADY_COMMITTED     | Mutation or commit on a committed invoice
              | INVALID_STATE         | Non-new line item, cancel of a draft
--------------|-----------------------|------------------------------------------
Tax           | UNKNOWN_TAX_RATE      | Rate outside the configured tax buckets
--------------|-----------------------|------------------------------------------
Not found     | INVOICE_NOT_FOUND     | Invoice id does not exist
              | REGISTER_NOT_FOUND    | Register id does not exist
--------------|-----------------------|------------------------------------------
Concurrency   | REGISTER_LOCK_FAILED  | Lock wait timed out / deadlocked
--------------|-----------------------|------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION| ORM-level write to a committed record

Storage errors other than lock acquisition failures (constraint violations,
lost connections) are NOT wrapped; they propagate untouched from SQLAlchemy.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        service.commit(invoice)
    except RegisterLockError as e:
        # Nothing was applied; the whole commit may be retried.
        schedule_retry(e.register_id)
    except AlreadyCommittedError as e:
        # Never retried automatically.
        show_error(e.code, e.invoice_id)
"""


class InvoiceKernelError(Exception):
    """
    Base exception for all invoice kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "INVOICE_KERNEL_ERROR"


# Invoice state exceptions


class InvoiceStateError(InvoiceKernelError):
    """Base exception for operations illegal in the invoice's current state."""

    code: str = "INVOICE_STATE_ERROR"


class AlreadyCommittedError(InvoiceStateError):
    """A mutation or commit targeted an invoice that is already committed."""

    code: str = "ALREADY_COMMITTED"

    def __init__(self, invoice_id: str, number: int | None = None):
        self.invoice_id = invoice_id
        self.number = number
        super().__init__(
            f"Invoice {invoice_id} is already committed (number {number})"
        )


class InvalidStateError(InvoiceStateError):
    """Structurally invalid operation for the target's state."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Invalid state for {entity_type} {entity_id}: {reason}")


# Tax exceptions


class TaxError(InvoiceKernelError):
    """Base exception for tax-rate errors."""

    code: str = "TAX_ERROR"


class UnknownTaxRateError(TaxError):
    """Tax percentage does not map to any configured tax bucket."""

    code: str = "UNKNOWN_TAX_RATE"

    def __init__(self, tax_percentage: str, known_rates: list[str]):
        self.tax_percentage = tax_percentage
        self.known_rates = known_rates
        super().__init__(
            f"Unknown tax percentage {tax_percentage}; "
            f"known rates: {', '.join(known_rates)}"
        )


# Lookup exceptions


class NotFoundError(InvoiceKernelError):
    """Base exception for directory lookups that found nothing."""

    code: str = "NOT_FOUND"


class InvoiceNotFoundError(NotFoundError):
    """Invoice with the given id was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class RegisterNotFoundError(NotFoundError):
    """Register with the given id was not found."""

    code: str = "REGISTER_NOT_FOUND"

    def __init__(self, register_id: str):
        self.register_id = register_id
        super().__init__(f"Register not found: {register_id}")


# Concurrency exceptions


class ConcurrencyError(InvoiceKernelError):
    """Base exception for concurrency failures. Safe to retry."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class RegisterLockError(ConcurrencyError):
    """
    The exclusive register lock could not be acquired.

    Raised when the store aborts the lock wait (lock timeout, deadlock
    detection).  The enclosing commit has been rolled back in full; the
    original storage exception is chained as ``__cause__``.
    """

    code: str = "REGISTER_LOCK_FAILED"

    def __init__(self, register_id: str, reason: str):
        self.register_id = register_id
        self.reason = reason
        super().__init__(f"Could not lock register {register_id}: {reason}")


# Immutability exceptions


class ImmutabilityError(InvoiceKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a committed record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
