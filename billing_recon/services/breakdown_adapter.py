"""Adapter between stored billing documents and normalized billing types.

Stored unit bills keep their sub-period breakdown either as an array of
entries or as an object keyed by position ("0", "1", "2"). Both shapes are
normalized into an ordered list on read, and the stored shape is restored
when a correction is written back.
"""

import logging
from decimal import Decimal
from typing import Any

from billing_recon.services.billing_types import (
    BillingPeriodDocument,
    BreakdownEntry,
    Payment,
    UnitBill,
    parse_date,
    to_decimal,
    to_money,
)
from billing_recon.services.fiscal_calendar import FiscalCalendar

logger = logging.getLogger(__name__)

LABEL_FIELD = "month"
CONSUMPTION_FIELD = "consumption"
TOTAL_AMOUNT_FIELD = "totalAmount"
CHARGE_FIELDS = ("waterCharge", "charge")
BREAKDOWN_FIELDS = ("monthlyBreakdown", "breakdown")
TOTAL_CHARGE_FIELDS = ("totalCharge", "waterCharge")


def _first_present(raw: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _position_sort_key(item: tuple[int, str]) -> tuple[int, int]:
    index, key = item
    return (int(key), index) if key.isdigit() else (10**9, index)


class BreakdownAdapter:
    """Normalizes billing documents and restores their stored breakdown shape."""

    def __init__(
        self,
        calendar: FiscalCalendar,
        other_charge_fields: tuple[str, ...] = ("carWashCharge", "boatWashCharge"),
        charge_field: str = "waterCharge",
        breakdown_field: str = "monthlyBreakdown",
    ):
        self.calendar = calendar
        self.other_charge_fields = other_charge_fields
        self.charge_field = charge_field
        self.breakdown_field = breakdown_field

    # Reading side

    def entry_from_document(self, raw: dict, position_key: str | None = None) -> BreakdownEntry:
        known = {LABEL_FIELD, CONSUMPTION_FIELD, TOTAL_AMOUNT_FIELD, *CHARGE_FIELDS}
        other_charges = {
            name: to_money(raw[name]) for name in self.other_charge_fields if raw.get(name) is not None
        }
        extras = {
            key: value
            for key, value in raw.items()
            if key not in known and key not in other_charges
        }
        return BreakdownEntry(
            label=str(raw.get(LABEL_FIELD) or ""),
            consumption=to_decimal(raw.get(CONSUMPTION_FIELD)),
            charge=to_money(_first_present(raw, CHARGE_FIELDS)),
            other_charges=other_charges,
            extras=extras,
            position_key=position_key,
        )

    def breakdown_from_document(self, raw: Any) -> tuple[list[BreakdownEntry], str]:
        """Normalize a stored breakdown into (ordered entries, stored shape)."""
        if raw is None:
            return [], "list"
        if isinstance(raw, list):
            return [self.entry_from_document(entry) for entry in raw if entry], "list"
        if isinstance(raw, dict):
            ordered = sorted(enumerate(raw.keys()), key=_position_sort_key)
            entries = [
                self.entry_from_document(raw[key], position_key=key)
                for _, key in ordered
                if raw[key]
            ]
            return entries, "dict"
        raise ValueError(f"Unsupported breakdown type: {type(raw).__name__}")

    def unit_bill_from_document(self, unit_id: str, raw: dict) -> UnitBill:
        breakdown, shape = self.breakdown_from_document(_first_present(raw, BREAKDOWN_FIELDS))
        payments = [
            Payment(amount=to_money(p.get("amount")), date=parse_date(p.get("date")))
            for p in raw.get("payments") or []
        ]
        return UnitBill(
            unit_id=unit_id,
            total_consumption=to_decimal(raw.get("totalConsumption")),
            total_charge=to_money(_first_present(raw, TOTAL_CHARGE_FIELDS)),
            breakdown=breakdown,
            breakdown_shape=shape,
            payments=payments,
            stored_paid_amount=to_money(raw.get("paidAmount")),
            penalty_amount=to_money(raw.get("penaltyAmount")),
            has_backup=raw.get("breakdownOriginal") is not None,
        )

    def period_from_document(self, raw: dict) -> BillingPeriodDocument:
        """Normalize a stored billing period document.

        Explicit sub-period keys on the document take precedence over keys
        derived from the fiscal calendar.

        Raises:
            ValueError: If the document carries neither keys nor a fiscal year/quarter,
                or its labels and keys differ in number
        """
        period_id = str(raw.get("periodId") or raw.get("id") or "")
        fiscal_year = raw.get("fiscalYear")
        fiscal_quarter = raw.get("fiscalQuarter")
        if (fiscal_year is None or fiscal_quarter is None) and period_id:
            parsed = FiscalCalendar.parse_period_id(period_id)
            if parsed:
                fiscal_year, fiscal_quarter = parsed

        keys = raw.get("subPeriodKeys")
        prior_key = raw.get("priorPeriodKey")
        labels = raw.get("subPeriodLabels")
        if not keys or not prior_key:
            if fiscal_year is None or fiscal_quarter is None:
                raise ValueError(f"Billing period {period_id!r} has no sub-period keys or fiscal quarter")
            cycle = self.calendar.cycle(int(fiscal_year), int(fiscal_quarter))
            keys = keys or cycle.sub_period_keys
            prior_key = prior_key or cycle.prior_period_key
            labels = labels or cycle.sub_period_labels
        labels = labels or tuple(str(key) for key in keys)
        if len(labels) != len(keys):
            raise ValueError(
                f"Billing period {period_id!r} has {len(labels)} sub-period label(s) for {len(keys)} key(s)"
            )

        units_raw = raw.get("units")
        if units_raw is None:
            units_raw = (raw.get("bills") or {}).get("units") or {}

        return BillingPeriodDocument(
            period_id=period_id,
            fiscal_year=int(fiscal_year) if fiscal_year is not None else None,
            fiscal_quarter=int(fiscal_quarter) if fiscal_quarter is not None else None,
            sub_period_labels=tuple(labels),
            sub_period_keys=tuple(keys),
            prior_period_key=str(prior_key),
            units={
                str(unit_id): self.unit_bill_from_document(str(unit_id), unit_raw)
                for unit_id, unit_raw in units_raw.items()
                if unit_raw
            },
        )

    # Writing side

    def entry_to_document(self, entry: BreakdownEntry) -> dict:
        document = dict(entry.extras)
        document[LABEL_FIELD] = entry.label
        document[CONSUMPTION_FIELD] = entry.consumption
        document[self.charge_field] = entry.charge
        document.update(entry.other_charges)
        document[TOTAL_AMOUNT_FIELD] = entry.total_amount
        return document

    def breakdown_to_document(self, entries: list[BreakdownEntry], shape: str) -> list | dict:
        """Restore the stored shape of a breakdown.

        A keyed breakdown keeps its stored keys. When an entry has no key (a
        sub-period added during correction) every entry is keyed by its
        position in the cycle instead.

        Raises:
            ValueError: If two entries carry the same key
        """
        if shape != "dict":
            return [self.entry_to_document(entry) for entry in entries]

        if any(entry.position_key is None for entry in entries):
            return {str(index): self.entry_to_document(entry) for index, entry in enumerate(entries)}

        document: dict[str, dict] = {}
        for entry in entries:
            if entry.position_key in document:
                raise ValueError(f"Duplicate breakdown key {entry.position_key!r}")
            document[entry.position_key] = self.entry_to_document(entry)
        return document

    def build_correction_patch(self, bill: UnitBill, corrected: list[BreakdownEntry]) -> dict:
        """Field-level patch that writes a corrected breakdown back to a unit bill.

        The pre-correction breakdown is backed up once; later corrections keep
        the first backup.
        """
        patch: dict[str, Any] = {
            self.breakdown_field: self.breakdown_to_document(corrected, bill.breakdown_shape),
            "totalConsumption": sum((e.consumption for e in corrected), Decimal("0")),
            "totalCharge": sum((e.charge for e in corrected), Decimal("0")),
        }
        if not bill.has_backup:
            patch["breakdownOriginal"] = self.breakdown_to_document(bill.breakdown, bill.breakdown_shape)
        return patch
