"""Custom exception classes for billing reconciliation.

Provides domain-specific exceptions for clear error handling and reporting.
"""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ConfigError(ReconciliationError):
    """Configuration loading or validation error."""

    pass


class StoreError(ReconciliationError):
    """Billing store operation error (connection, query, write)."""

    pass


class StoreUnavailableError(StoreError):
    """Billing store cannot be reached or initialized."""

    pass


class PersistenceError(StoreError):
    """Writing a correction back to the billing store failed."""

    def __init__(self, message: str, period_id: str | None = None, unit_id: str | None = None):
        super().__init__(message)
        self.period_id = period_id
        self.unit_id = unit_id


class MissingDataError(ReconciliationError):
    """A reading (or statement) required for reconciliation is absent."""

    def __init__(self, unit_id: str, period_key: str):
        super().__init__(f"Missing data for unit {unit_id}: {period_key}")
        self.unit_id = unit_id
        self.period_key = period_key


class AlreadySettledError(ReconciliationError):
    """Attempt to mutate a bill that is already fully paid."""

    pass
