"""In-memory billing store backed by plain dictionaries.

Used by tests and for reconciling a JSON snapshot exported from the document
store. Writes only touch the in-memory copy.
"""

import copy
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

from billing_recon.services.billing_types import (
    PersistedCreditHistoryEntry,
    RunningBalanceLineItem,
    UnitStatement,
    parse_date,
    to_decimal,
    to_money,
)
from billing_recon.services.consumption_service import extract_reading
from billing_recon.services.errors import PersistenceError, StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


class InMemoryBillingStore:
    """BillingStore implementation over a snapshot dictionary.

    Snapshot layout:
        readings:        {period_key: {unit_id: value | {"reading": value}}}
        bills:           {period_id: billing period document}
        credit_history:  {unit_id: [{"date", "type", "amount", "note"}]}
        statements:      {unit_id: {"openingBalance", "lineItems": [...]}}
    """

    def __init__(self, snapshot: dict[str, Any] | None = None):
        snapshot = snapshot or {}
        self.readings: dict[str, dict[str, Any]] = copy.deepcopy(snapshot.get("readings", {}))
        self.bills: dict[str, dict[str, Any]] = copy.deepcopy(snapshot.get("bills", {}))
        self.credit_history: dict[str, list[dict]] = copy.deepcopy(snapshot.get("credit_history", {}))
        self.statements: dict[str, dict[str, Any]] = copy.deepcopy(snapshot.get("statements", {}))
        self.write_log: list[tuple[str, str, dict[str, Any]]] = []
        self.failing_units: set[str] = set()
        """Unit ids whose writes fail (for exercising failure handling)"""

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryBillingStore":
        """Load a snapshot exported as JSON.

        Raises:
            StoreUnavailableError: If the snapshot cannot be read
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                snapshot = json.load(f, parse_float=Decimal)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"Cannot load billing snapshot {path}: {e}") from e
        return cls(snapshot)

    async def get_reading(self, unit_id: str, period_key: str) -> Decimal | None:
        month = self.readings.get(period_key)
        if not month:
            return None
        unit_readings = month.get("readings", month)
        return extract_reading(unit_readings.get(unit_id))

    async def list_billing_period_ids(self) -> list[str]:
        return sorted(self.bills.keys())

    async def get_billing_period_document(self, period_id: str) -> dict[str, Any] | None:
        document = self.bills.get(period_id)
        if document is None:
            return None
        result = copy.deepcopy(document)
        result.setdefault("periodId", period_id)
        return result

    async def update_unit_bill(self, period_id: str, unit_id: str, patch: dict[str, Any]) -> None:
        if unit_id in self.failing_units:
            raise PersistenceError("Simulated write failure", period_id=period_id, unit_id=unit_id)

        document = self.bills.get(period_id)
        units = None
        if document is not None:
            units = document.get("units")
            if units is None:
                units = (document.get("bills") or {}).get("units")
        if not units or unit_id not in units:
            raise PersistenceError(
                f"Unit bill {unit_id} not found in {period_id}",
                period_id=period_id,
                unit_id=unit_id,
            )

        units[unit_id].update(copy.deepcopy(patch))
        self.write_log.append((period_id, unit_id, copy.deepcopy(patch)))

    async def get_persisted_credit_history(self, unit_id: str) -> list[PersistedCreditHistoryEntry]:
        return [
            PersistedCreditHistoryEntry(
                date=parse_date(entry.get("date") or entry.get("timestamp")),
                type=str(entry.get("type", "")),
                amount=to_money(entry.get("amount")),
                note=entry.get("note") or entry.get("notes") or entry.get("description") or "",
                entry_id=entry.get("id"),
            )
            for entry in self.credit_history.get(unit_id, [])
        ]

    async def list_statement_unit_ids(self) -> list[str]:
        return sorted(self.statements)

    async def get_unit_statement(self, unit_id: str) -> UnitStatement | None:
        statement = self.statements.get(unit_id)
        if statement is None:
            return None
        try:
            line_items = [
                RunningBalanceLineItem(
                    date=parse_date(item["date"]),
                    description=item.get("description", ""),
                    charge=to_money(item.get("charge")),
                    payment=to_money(item.get("payment")),
                    balance=to_decimal(item.get("balance")).quantize(Decimal("0.01")),
                )
                for item in statement.get("lineItems", [])
            ]
            opening_balance = to_money(statement.get("openingBalance"))
        except (KeyError, ValueError, ArithmeticError) as e:
            raise StoreError(f"Malformed statement of {unit_id}: {e!r}") from e
        return UnitStatement(unit_id=unit_id, opening_balance=opening_balance, line_items=line_items)
