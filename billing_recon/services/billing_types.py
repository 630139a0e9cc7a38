"""Domain types shared by the reconciliation and credit-flow services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Convert a stored numeric value (int, float, str, Decimal, None) to Decimal."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT)


def parse_date(value: Any) -> date | None:
    """Parse a stored date (date, datetime, ISO string or epoch seconds)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).date()
    return date.fromisoformat(str(value)[:10])


@dataclass
class Payment:
    """A payment recorded against a unit bill."""

    amount: Decimal
    date: date | None = None


@dataclass
class BreakdownEntry:
    """One sub-period (e.g. a month) of a unit bill."""

    label: str
    consumption: Decimal = ZERO
    charge: Decimal = ZERO
    other_charges: dict[str, Decimal] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)
    position_key: str | None = None
    """Key of the entry when the stored breakdown is a keyed object"""

    @property
    def total_amount(self) -> Decimal:
        return self.charge + sum(self.other_charges.values(), ZERO)


@dataclass
class UnitBill:
    """A unit's share of a billing period document, normalized."""

    unit_id: str
    total_consumption: Decimal
    total_charge: Decimal
    breakdown: list[BreakdownEntry]
    breakdown_shape: str = "list"
    """Stored shape of the breakdown: "list" or "dict" """
    payments: list[Payment] = field(default_factory=list)
    stored_paid_amount: Decimal = ZERO
    penalty_amount: Decimal = ZERO
    has_backup: bool = False

    @property
    def paid_amount(self) -> Decimal:
        """Sum of payments, falling back to the stored paid figure."""
        if self.payments:
            return sum((p.amount for p in self.payments), ZERO)
        return self.stored_paid_amount

    @property
    def amount_due(self) -> Decimal:
        return self.total_charge + self.penalty_amount

    @property
    def is_paid(self) -> bool:
        return self.paid_amount >= self.amount_due


@dataclass
class BillingPeriodDocument:
    """A multi-sub-period billing document (e.g. a fiscal quarter)."""

    period_id: str
    fiscal_year: int | None
    fiscal_quarter: int | None
    sub_period_labels: tuple[str, ...]
    sub_period_keys: tuple[str, ...]
    prior_period_key: str
    units: dict[str, UnitBill] = field(default_factory=dict)


@dataclass
class RunningBalanceLineItem:
    """A statement line: the balance is the account balance after this line."""

    date: date
    description: str
    charge: Decimal = ZERO
    payment: Decimal = ZERO
    balance: Decimal = ZERO


@dataclass
class UnitStatement:
    """Chronological running-balance statement of a unit."""

    unit_id: str
    opening_balance: Decimal
    line_items: list[RunningBalanceLineItem] = field(default_factory=list)


class CreditEventType(str, Enum):
    """Kinds of credit-balance movements."""

    CREDIT_ADDED = "credit_added"
    CREDIT_USED = "credit_used"


@dataclass(frozen=True)
class CreditEvent:
    """A credit movement derived from the running balance (amount is a magnitude)."""

    date: date
    type: CreditEventType
    amount: Decimal
    source_description: str
    line_item_balance: Decimal | None = None

    @property
    def note(self) -> str:
        if self.type == CreditEventType.CREDIT_USED:
            return f"Used ${self.amount:,.2f} from credit to pay {self.source_description}"
        return f"Added ${self.amount:,.2f} to credit from {self.source_description}"


@dataclass(frozen=True)
class PersistedCreditHistoryEntry:
    """An entry of the independently maintained credit history ledger."""

    date: date | None
    type: str
    amount: Decimal
    """Amount as stored; credit_used entries are usually negative"""
    note: str = ""
    entry_id: str | None = None
