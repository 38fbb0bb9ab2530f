"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger must react to errors by type, not by message text:

    try:
        ledger.append(draft)
    except MovementValidationError as e:
        show_errors(e.errors)            # structured records, not a string
    except IdempotencyConflictError as e:
        alert(e.idempotency_key)

Every exception carries a CODE class attribute (machine-readable) and keeps
its context as attributes so it survives logging and serialization.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StockKernelError:

    StockKernelError (base)
    |
    +-- DecodeError
    |   +-- InvalidPrefixError
    |   +-- InvalidProductCodeError
    |   +-- InvalidExpiryError
    |   +-- InvalidLotError
    |
    +-- CatalogError
    |   +-- ProductNotFoundError
    |
    +-- MovementError
    |   +-- MovementValidationError
    |   +-- IdempotencyConflictError
    |   +-- MovementNotFoundError
    |   +-- ExchangeRequestError
    |
    +-- QueryError
    |   +-- QueryCancelledError
    |   +-- DateBasisRequiredError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigError
        +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|------------------------------------------
Decode       | INVALID_PREFIX           | Line does not start with AI 01
             | INVALID_PRODUCT_CODE     | AI 01 not followed by 14 digits
             | INVALID_EXPIRY           | AI 17 missing or not a valid YYMMDD
             | INVALID_LOT              | AI 10 missing or empty
-------------|--------------------------|------------------------------------------
Catalog      | PRODUCT_NOT_FOUND        | Unit code / product ref not registered
-------------|--------------------------|------------------------------------------
Movement     | MOVEMENT_VALIDATION      | Draft violates structural rules
             | IDEMPOTENCY_CONFLICT     | Same key re-used with a different payload
             | MOVEMENT_NOT_FOUND       | Event id does not exist
             | EXCHANGE_REQUEST_INVALID | Exchange legs carry the wrong reasons
-------------|--------------------------|------------------------------------------
Query        | QUERY_CANCELLED          | Caller cancelled a streaming query
             | DATE_BASIS_REQUIRED      | Date-bounded query without a DateBasis
-------------|--------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | UPDATE / DELETE of a movement row
-------------|--------------------------|------------------------------------------
Config       | CONFIGURATION_INVALID    | Settings file missing keys / bad values

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Decode and catalog errors are COLLECTED by batch operations and returned
   beside the successes; they never abort a batch.

2. MovementValidationError rejects a single append. The ledger is never
   partially written and the append is never retried automatically.

3. Derived-balance problems are NOT exceptions. They are returned as
   ConsistencyWarning values inside query results (see domain/dtos.py).
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Decode-related exceptions


class DecodeError(StockKernelError):
    """Base exception for malformed barcode lines."""

    code: str = "DECODE_ERROR"

    def __init__(self, raw: str, detail: str):
        self.raw = raw
        self.detail = detail
        super().__init__(f"{detail}: {raw!r}")


class InvalidPrefixError(DecodeError):
    """Line does not start with the AI 01 product code prefix."""

    code: str = "INVALID_PREFIX"


class InvalidProductCodeError(DecodeError):
    """AI 01 is not followed by exactly 14 digits."""

    code: str = "INVALID_PRODUCT_CODE"


class InvalidExpiryError(DecodeError):
    """AI 17 is missing or its YYMMDD value is not a calendar date."""

    code: str = "INVALID_EXPIRY"


class InvalidLotError(DecodeError):
    """AI 10 is missing or carries an empty lot."""

    code: str = "INVALID_LOT"


# Catalog-related exceptions


class CatalogError(StockKernelError):
    """Base exception for catalog lookup errors."""

    code: str = "CATALOG_ERROR"


class ProductNotFoundError(CatalogError):
    """
    Product unit code (or product ref) is not registered in the catalog.

    Surfaced to operators as "needs registration"; never silently dropped.
    """

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, lookup_value: str, lookup_field: str = "unit_code"):
        self.lookup_value = lookup_value
        self.lookup_field = lookup_field
        super().__init__(f"Product not found by {lookup_field}: {lookup_value}")


# Movement-related exceptions


class MovementError(StockKernelError):
    """Base exception for movement append errors."""

    code: str = "MOVEMENT_ERROR"


class MovementValidationError(MovementError):
    """
    Movement draft violates the structural rules of the ledger.

    Carries the individual ValidationError records produced by the pure
    validator so callers can render them field by field.
    """

    code: str = "MOVEMENT_VALIDATION"

    def __init__(self, errors: tuple):
        self.errors = tuple(errors)
        self.error_codes = [e.code for e in self.errors]
        super().__init__(
            "Movement rejected: "
            + "; ".join(e.message for e in self.errors)
        )


class IdempotencyConflictError(MovementError):
    """
    Idempotency key already used for a different payload.

    Appends are immutable: re-delivery must carry the exact same payload.
    """

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, expected_hash: str, received_hash: str):
        self.idempotency_key = idempotency_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {idempotency_key} already used: "
            f"expected payload {expected_hash}, received {received_hash}"
        )


class MovementNotFoundError(MovementError):
    """Movement with given event id was not found."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Movement not found: {event_id}")


class ExchangeRequestError(MovementError):
    """Exchange request legs do not describe an exchange."""

    code: str = "EXCHANGE_REQUEST_INVALID"

    def __init__(self, exchange_id: str, reason: str):
        self.exchange_id = exchange_id
        self.reason = reason
        super().__init__(f"Invalid exchange {exchange_id}: {reason}")


# Query-related exceptions


class QueryError(StockKernelError):
    """Base exception for ledger read errors."""

    code: str = "QUERY_ERROR"


class QueryCancelledError(QueryError):
    """Streaming query was cancelled by the caller."""

    code: str = "QUERY_CANCELLED"

    def __init__(self, rows_read: int):
        self.rows_read = rows_read
        super().__init__(f"Query cancelled after {rows_read} rows")


class DateBasisRequiredError(QueryError):
    """
    Date-bounded query issued without choosing a date basis.

    Callers must say whether cutoffs apply to the business date (effective
    date with recorded-at fallback) or to the recorded-at timestamp.
    """

    code: str = "DATE_BASIS_REQUIRED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} requires an explicit date basis")


# Immutability exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification or deletion of an immutable movement."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Configuration exceptions


class ConfigError(StockKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigurationError(ConfigError):
    """Settings file is missing required keys or carries invalid values."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, source: str, problems: list[str]):
        self.source = source
        self.problems = list(problems)
        super().__init__(
            f"Invalid configuration {source}: " + "; ".join(self.problems)
        )
