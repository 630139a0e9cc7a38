"""Billing store interface consumed by the reconciliation and credit services.

The store is passed explicitly into every service. Billing period documents
are returned in their stored form and normalized by BreakdownAdapter.
"""

from decimal import Decimal
from typing import Any, Protocol

from billing_recon.services.billing_types import PersistedCreditHistoryEntry, UnitStatement


class BillingStore(Protocol):
    """Async access to readings, bill documents and credit ledgers."""

    async def get_reading(self, unit_id: str, period_key: str) -> Decimal | None:
        """Reading of a unit at the end of a fiscal month, or None if absent."""
        ...

    async def list_billing_period_ids(self) -> list[str]:
        """Ids of all billing period documents."""
        ...

    async def get_billing_period_document(self, period_id: str) -> dict[str, Any] | None:
        """Stored billing period document, or None if absent."""
        ...

    async def update_unit_bill(self, period_id: str, unit_id: str, patch: dict[str, Any]) -> None:
        """Apply a field-level patch to one unit bill.

        Raises:
            PersistenceError: If the write fails
        """
        ...

    async def get_persisted_credit_history(self, unit_id: str) -> list[PersistedCreditHistoryEntry]:
        """Stored credit history entries of a unit, oldest first."""
        ...

    async def list_statement_unit_ids(self) -> list[str]:
        """Ids of all units that have a running-balance statement."""
        ...

    async def get_unit_statement(self, unit_id: str) -> UnitStatement | None:
        """Running-balance statement of a unit, or None if absent."""
        ...
