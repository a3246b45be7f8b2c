"""
Typed Exception Hierarchy for the expense schedule engine.

Every error the engine raises is a subclass of ExpenseKernelError and
carries:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as attributes (not just a message string)

Example:
    try:
        check_can_pause(schedule)
    except ScheduleStateError as e:
        api_response(code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseKernelError (base)
    |
    +-- ScheduleError
    |   +-- ScheduleNotFoundError
    |   +-- ScheduleValidationError
    |   +-- ScheduleStateError
    |   +-- ScheduleNotStartedError
    |   +-- NoFutureOccurrenceError
    |   +-- NoScheduledDatesError
    |   +-- InvalidScheduleDataError
    |
    +-- StorageError
    |   +-- ClaimFailedError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Schedule        | SCHEDULE_NOT_FOUND          | Missing, removed, or not accessible
                | VALIDATION_FAILED           | Bad input on create / update
                | INVALID_SCHEDULE_STATE      | Transition not allowed from status
                | SCHEDULE_NOT_STARTED        | run_now before start_at
                | NO_FUTURE_OCCURRENCE        | resume found nothing ahead
                | NO_SCHEDULED_DATES          | run_now has nothing to do
                | INVALID_SCHEDULE_DATA       | Row missing account / car / user
----------------|-----------------------------|-----------------------------------------
Storage         | CLAIM_FAILED                | Due-schedule claim query failed
----------------|-----------------------------|-----------------------------------------
Currency        | INVALID_CURRENCY            | Not a valid ISO 4217 code
----------------|-----------------------------|-----------------------------------------
Config          | INVALID_CONFIGURATION       | Settings file or values rejected
"""


class ExpenseKernelError(Exception):
    """
    Base exception for all expense engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Schedule-related exceptions


class ScheduleError(ExpenseKernelError):
    """Base exception for schedule-related errors."""

    code: str = "SCHEDULE_ERROR"


class ScheduleNotFoundError(ScheduleError):
    """
    Schedule does not exist, is removed, or is not visible to the caller.

    Access failures use this same error so callers cannot discover ids
    belonging to other accounts.
    """

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str):
        self.schedule_id = str(schedule_id)
        super().__init__("Expense schedule not found")


class ScheduleValidationError(ScheduleError):
    """Input rejected before any mutation."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class ScheduleStateError(ScheduleError):
    """Requested transition is not allowed from the current status."""

    code: str = "INVALID_SCHEDULE_STATE"

    def __init__(self, schedule_id: str, current_status: str, message: str):
        self.schedule_id = str(schedule_id)
        self.current_status = current_status
        super().__init__(message)


class ScheduleNotStartedError(ScheduleError):
    """Manual run requested before the schedule's start date."""

    code: str = "SCHEDULE_NOT_STARTED"

    def __init__(self, schedule_id: str, start_at: str):
        self.schedule_id = str(schedule_id)
        self.start_at = start_at
        super().__init__("Cannot run schedule before its start date")


class NoFutureOccurrenceError(ScheduleError):
    """Resume found no occurrence within the schedule's window."""

    code: str = "NO_FUTURE_OCCURRENCE"

    def __init__(self, schedule_id: str):
        self.schedule_id = str(schedule_id)
        super().__init__("No future occurrences found")


class NoScheduledDatesError(ScheduleError):
    """Manual run found no occurrence to materialize and nothing to clean up."""

    code: str = "NO_SCHEDULED_DATES"

    def __init__(self, schedule_id: str, message: str):
        self.schedule_id = str(schedule_id)
        super().__init__(message)


class InvalidScheduleDataError(ScheduleError):
    """Persisted schedule lacks the identifiers needed to materialize expenses."""

    code: str = "INVALID_SCHEDULE_DATA"

    def __init__(self, schedule_id: str, missing: list[str]):
        self.schedule_id = str(schedule_id)
        self.missing = missing
        super().__init__(
            f"Invalid schedule data: missing {', '.join(missing)}"
        )


# Storage-related exceptions


class StorageError(ExpenseKernelError):
    """Base exception for storage failures surfaced by the engine."""

    code: str = "STORAGE_ERROR"


class ClaimFailedError(StorageError):
    """Claiming due schedules failed; the batch run cannot proceed."""

    code: str = "CLAIM_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to claim due schedules: {reason}")


# Currency-related exceptions


class CurrencyError(ExpenseKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


# Configuration exceptions


class ConfigurationError(ExpenseKernelError):
    """Settings could not be loaded or failed validation."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)
