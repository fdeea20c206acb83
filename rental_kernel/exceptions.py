"""
Typed Exception Hierarchy for the rental finance engine.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RentalFinanceError:

    RentalFinanceError (base)
    |
    +-- ValidationError
    |
    +-- PersistenceError
    |
    +-- BatchError
    |   +-- BatchCriticalError
    |
    +-- ObligationError
    |   +-- ObligationNotFoundError
    |   +-- ObligationStateError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Engine input out of range (amount, rate,
                |                             | due day, contract dates)
----------------|-----------------------------|-----------------------------------------
Persistence     | PERSISTENCE_ERROR           | A read or write against the store failed
----------------|-----------------------------|-----------------------------------------
Batch           | BATCH_CRITICAL_ERROR        | Failure escaped the per-item boundary
----------------|-----------------------------|-----------------------------------------
Obligation      | OBLIGATION_NOT_FOUND        | Obligation ID doesn't exist
                | OBLIGATION_STATE_ERROR      | Transition from a terminal status
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Audit row updated, obligation deleted,
                |                             | scheduled contract terms changed
----------------|-----------------------------|-----------------------------------------
Config          | CONFIGURATION_ERROR         | Settings file or value is invalid

===============================================================================
HANDLING PATTERNS
===============================================================================

ValidationError is raised by the calculation engine and never caught inside
it.  The lifecycle processor catches every exception at the per-obligation
boundary and records it against that obligation; the batch coordinator
catches whatever escapes the processor and reports the run as failed.

    try:
        schedule = generate_monthly_schedule(contract)
    except ValidationError as e:
        return {"error": e.code, "field": e.field, "reason": e.reason}
"""


class RentalFinanceError(Exception):
    """
    Base exception for all rental finance errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RENTAL_FINANCE_ERROR"


# Validation


class ValidationError(RentalFinanceError):
    """Engine input is malformed or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Persistence


class PersistenceError(RentalFinanceError):
    """A persistence operation failed."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str, record_id: str | None = None):
        self.operation = operation
        self.reason = reason
        self.record_id = record_id
        target = f" ({record_id})" if record_id else ""
        super().__init__(f"Persistence failure in {operation}{target}: {reason}")


# Batch-related exceptions


class BatchError(RentalFinanceError):
    """Base exception for batch run errors."""

    code: str = "BATCH_ERROR"


class BatchCriticalError(BatchError):
    """
    A failure escaped the per-obligation boundary of a batch run.

    The coordinator never raises this; it uses it to label the critical
    audit entry and the failed report.
    """

    code: str = "BATCH_CRITICAL_ERROR"

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"Critical failure during {stage}: {reason}")


# Obligation-related exceptions


class ObligationError(RentalFinanceError):
    """Base exception for rent obligation errors."""

    code: str = "OBLIGATION_ERROR"


class ObligationNotFoundError(ObligationError):
    """Obligation with given ID was not found."""

    code: str = "OBLIGATION_NOT_FOUND"

    def __init__(self, obligation_id: str):
        self.obligation_id = obligation_id
        super().__init__(f"Rent obligation not found: {obligation_id}")


class ObligationStateError(ObligationError):
    """Requested transition is not allowed from the current status."""

    code: str = "OBLIGATION_STATE_ERROR"

    def __init__(self, obligation_id: str, current_status: str, requested: str):
        self.obligation_id = obligation_id
        self.current_status = current_status
        self.requested = requested
        super().__init__(
            f"Obligation {obligation_id} is {current_status}; "
            f"cannot move to {requested}"
        )


# Immutability-related exceptions


class ImmutabilityError(RentalFinanceError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Audit log rows are append-only, rent obligations are never deleted, and
    contract terms are frozen once a schedule exists.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigurationError(RentalFinanceError):
    """Settings could not be loaded or contain invalid values."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key}: {reason}")
