"""Reconciliation orchestration - verifies and repairs unit bills from meter readings.

Orchestrates the per-unit pipeline:
1. Load billing period documents and normalize them
2. Fetch the readings of each sub-period (plus the prior cycle's last reading)
3. Derive consumption and apply the negative-consumption policy
4. Paid bills: report what the charge should have been, never write
5. Unpaid bills: allocate, print the change, write it (unless dry-run)

Units are processed strictly one at a time; a failed write on one unit is
recorded and the run moves on to the next.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from billing_recon.config.recon_config import ReconConfig
from billing_recon.services.allocation_service import AllocationResult, AllocationService, AllocationStatus
from billing_recon.services.billing_store import BillingStore
from billing_recon.services.billing_types import CENT, ZERO, BillingPeriodDocument, BreakdownEntry, UnitBill
from billing_recon.services.breakdown_adapter import BreakdownAdapter
from billing_recon.services.consumption_service import apply_negative_policy, consumption_series
from billing_recon.services.errors import AlreadySettledError, PersistenceError, StoreError
from billing_recon.services.fiscal_calendar import FiscalCalendar


class ReconciliationState(str, Enum):
    """State of one (unit, billing period) after a run."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    CORRECTED = "corrected"
    UNFIXABLE = "unfixable"
    PAID_DISCREPANCY = "paid_discrepancy"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SubPeriodDiscrepancy:
    """Difference between a paid bill's sub-period and its readings."""

    label: str
    bill_consumption: Decimal
    readings_consumption: Decimal
    bill_charge: Decimal
    expected_charge: Decimal

    @property
    def difference(self) -> Decimal:
        return self.expected_charge - self.bill_charge


@dataclass
class PaidBillDiscrepancy:
    """What a settled bill should have charged according to readings."""

    unit_id: str
    period_id: str
    current_consumption: Decimal
    readings_consumption: Decimal
    current_charge: Decimal
    expected_charge: Decimal
    charge_difference: Decimal
    """Expected minus billed, after known-credit exclusions"""
    sub_periods: list[SubPeriodDiscrepancy] = field(default_factory=list)
    excluded_credit: Decimal = ZERO
    exclusion_description: str = ""

    @property
    def credit_due(self) -> Decimal:
        """Amount owed back to the owner (billed more than readings support)."""
        return -self.charge_difference if self.charge_difference < 0 else ZERO

    @property
    def undercharge(self) -> Decimal:
        return self.charge_difference if self.charge_difference > 0 else ZERO


@dataclass
class UnitReconciliation:
    """Result of reconciling one unit bill."""

    unit_id: str
    period_id: str
    state: ReconciliationState = ReconciliationState.UNVERIFIED
    message: str = ""
    allocation: AllocationResult | None = None
    discrepancy: PaidBillDiscrepancy | None = None
    patch: dict[str, Any] | None = None
    anomalies: list[str] = field(default_factory=list)


@dataclass
class ReconciliationRun:
    """Accumulated results of a reconciliation run."""

    dry_run: bool
    results: list[UnitReconciliation] = field(default_factory=list)

    def count(self, state: ReconciliationState) -> int:
        return sum(1 for result in self.results if result.state == state)

    @property
    def corrected(self) -> int:
        return self.count(ReconciliationState.CORRECTED)

    @property
    def failed(self) -> int:
        return self.count(ReconciliationState.FAILED)

    @property
    def skipped(self) -> int:
        return self.count(ReconciliationState.SKIPPED)

    @property
    def paid_discrepancies(self) -> list[PaidBillDiscrepancy]:
        return [result.discrepancy for result in self.results if result.discrepancy is not None]

    def get_summary_report(self) -> str:
        """Generate a summary report of the run."""
        discrepancies = self.paid_discrepancies
        credit_due = sum((d.credit_due for d in discrepancies), ZERO)
        undercharge = sum((d.undercharge for d in discrepancies), ZERO)
        fixed_label = "Would fix" if self.dry_run else "Fixed"

        lines = [
            "RECONCILIATION SUMMARY REPORT" + (" (DRY RUN)" if self.dry_run else ""),
            "-" * 50,
            f"Bills examined: {len(self.results)}",
            f"{fixed_label}: {self.corrected}",
            f"Verified: {self.count(ReconciliationState.VERIFIED)}",
            f"Skipped (missing readings): {self.skipped}",
            f"Unfixable (manual review): {self.count(ReconciliationState.UNFIXABLE)}",
            f"Paid with discrepancy: {self.count(ReconciliationState.PAID_DISCREPANCY)}",
            f"Failed (write errors): {self.failed}",
            "-" * 50,
            f"Credits due on paid bills: ${credit_due:,.2f}",
            f"Undercharged on paid bills: ${undercharge:,.2f}",
        ]
        return "\n".join(lines)


def _describe_changes(allocation: AllocationResult) -> list[str]:
    lines = []
    for change in allocation.changes:
        delta = change.charge_after - change.charge_before
        lines.append(
            f"  {change.label}: {change.consumption_before} -> {change.consumption_after} units, "
            f"${change.charge_before:,.2f} -> ${change.charge_after:,.2f} ({delta:+,.2f})"
        )
    return lines


class ReconciliationService:
    """Reconciles unit bills against meter readings."""

    def __init__(
        self,
        store: BillingStore,
        config: ReconConfig,
        dry_run: bool = False,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize reconciliation service.

        Args:
            store: Billing store to read from and write corrections to
            config: Reconciliation rules
            dry_run: Compute everything but never call the store's write operation
            logger: Optional logger instance (creates if not provided)
        """
        self.store = store
        self.config = config
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)
        self.adapter = BreakdownAdapter(
            FiscalCalendar(config.fiscal_year_start_month, config.sub_periods_per_cycle),
            other_charge_fields=config.other_charge_fields,
        )
        self.allocator = AllocationService(
            unit_rate=config.unit_rate,
            consumption_tolerance=config.consumption_tolerance,
            money_tolerance=config.money_tolerance,
            consumption_quantum=config.consumption_quantum,
            strategies=config.allocation_strategies,
        )

    async def load_periods(self, period_ids: list[str] | None = None) -> list[BillingPeriodDocument]:
        """Load and normalize billing period documents.

        Documents that cannot be normalized are skipped with a warning.

        Raises:
            StoreError: If the store cannot be queried
        """
        if period_ids is None:
            period_ids = await self.store.list_billing_period_ids()

        documents = []
        for period_id in period_ids:
            raw = await self.store.get_billing_period_document(period_id)
            if raw is None:
                self.logger.warning("Billing period %s not found", period_id)
                continue
            raw.setdefault("periodId", period_id)
            try:
                documents.append(self.adapter.period_from_document(raw))
            except (ValueError, ArithmeticError) as e:
                self.logger.warning("Skipping billing period %s: %s", period_id, e)
        return documents

    async def reconcile(
        self,
        unit_ids: list[str] | None = None,
        period_ids: list[str] | None = None,
    ) -> ReconciliationRun:
        """Reconcile the selected units (all units when None) across billing periods.

        Returns:
            ReconciliationRun with one result per (unit, billing period)
        """
        run = ReconciliationRun(dry_run=self.dry_run)
        documents = await self.load_periods(period_ids)

        if unit_ids is None:
            targets = sorted({unit_id for document in documents for unit_id in document.units})
        else:
            targets = list(unit_ids)
        self.logger.info("Found %d unit(s) to process", len(targets))

        for unit_id in targets:
            self.logger.info("Reconciling unit %s...", unit_id)
            for document in documents:
                if unit_id not in document.units:
                    continue
                run.results.append(await self.reconcile_unit_period(document, unit_id))

        return run

    async def fetch_readings_consumption(
        self,
        document: BillingPeriodDocument,
        unit_id: str,
        result: UnitReconciliation,
    ) -> list[Decimal] | None:
        """Readings-derived consumption per sub-period, or None when it cannot be used.

        Sets the result state to SKIPPED (missing readings) or UNFIXABLE
        (anomaly rejected by policy) when returning None.
        """
        prior = await self.store.get_reading(unit_id, document.prior_period_key)
        readings = [await self.store.get_reading(unit_id, key) for key in document.sub_period_keys]

        missing = [
            key
            for key, value in zip((document.prior_period_key, *document.sub_period_keys), (prior, *readings))
            if value is None
        ]
        if missing:
            result.state = ReconciliationState.SKIPPED
            result.message = f"Missing readings: {', '.join(missing)}"
            self.logger.warning("  Unit %s %s: %s - skipping", unit_id, document.period_id, result.message)
            return None

        consumption = []
        for label, delta in zip(document.sub_period_labels, consumption_series(readings, prior)):
            value = apply_negative_policy(delta, self.config.negative_consumption_policy)
            if delta.anomaly:
                note = f"{label}: negative consumption {delta.consumption}"
                result.anomalies.append(note)
                self.logger.warning("  Unit %s %s: %s", unit_id, document.period_id, note)
            if value is None:
                result.state = ReconciliationState.UNFIXABLE
                result.message = f"Negative consumption rejected by policy ({label})"
                return None
            consumption.append(value)
        return consumption

    async def reconcile_unit_period(self, document: BillingPeriodDocument, unit_id: str) -> UnitReconciliation:
        """Reconcile one unit bill; never raises for per-unit store failures."""
        result = UnitReconciliation(unit_id=unit_id, period_id=document.period_id)
        bill = document.units[unit_id]

        try:
            consumption = await self.fetch_readings_consumption(document, unit_id, result)
            if consumption is None:
                return result

            if bill.is_paid:
                self.assess_paid_bill(document, bill, consumption, result)
                return result

            allocation = self.allocator.allocate(bill, consumption, document.sub_period_labels)
            result.allocation = allocation

            if allocation.status == AllocationStatus.UNFIXABLE:
                result.state = ReconciliationState.UNFIXABLE
                result.message = allocation.reason or "Cannot allocate"
                self.logger.warning(
                    "  Unit %s %s: %s - needs manual review", unit_id, document.period_id, result.message
                )
            elif allocation.status == AllocationStatus.NO_CHANGE:
                result.state = ReconciliationState.VERIFIED
                result.message = "Breakdown matches readings"
                self.logger.info("  Unit %s %s: verified", unit_id, document.period_id)
            else:
                await self.apply_correction(document, bill, allocation.breakdown, result)

        except StoreError as e:
            result.state = ReconciliationState.FAILED
            result.message = str(e)
            self.logger.error("  Unit %s %s: store error: %s", unit_id, document.period_id, e)

        return result

    async def apply_correction(
        self,
        document: BillingPeriodDocument,
        bill: UnitBill,
        corrected: list[BreakdownEntry],
        result: UnitReconciliation,
    ) -> None:
        """Print the correction, then write it unless this is a dry run.

        Raises:
            AlreadySettledError: If called for a fully paid bill
        """
        if bill.is_paid:
            raise AlreadySettledError(f"Unit {bill.unit_id} {document.period_id} is paid and cannot be modified")

        allocation = result.allocation
        patch = self.adapter.build_correction_patch(bill, corrected)
        result.patch = patch

        self.logger.info(
            "  Unit %s %s: misallocation found (strategy: %s)",
            bill.unit_id,
            document.period_id,
            allocation.strategy if allocation else "-",
        )
        if allocation:
            for line in _describe_changes(allocation):
                self.logger.info(line)

        if self.dry_run:
            self.logger.info(
                "  [DRY RUN] Would update %s unit %s:\n%s",
                document.period_id,
                bill.unit_id,
                json.dumps(patch, default=str, indent=2),
            )
            result.state = ReconciliationState.CORRECTED
            result.message = "Correction computed (dry run)"
            return

        try:
            await self.store.update_unit_bill(document.period_id, bill.unit_id, patch)
        except PersistenceError as e:
            result.state = ReconciliationState.FAILED
            result.message = f"Write failed: {e}"
            self.logger.error("  Unit %s %s: write failed: %s", bill.unit_id, document.period_id, e)
            return

        result.state = ReconciliationState.CORRECTED
        result.message = "Correction written"
        self.logger.info("  Unit %s %s: correction written", bill.unit_id, document.period_id)

    def assess_paid_bill(
        self,
        document: BillingPeriodDocument,
        bill: UnitBill,
        consumption: list[Decimal],
        result: UnitReconciliation,
    ) -> None:
        """Compute what a settled bill should have charged; never mutates it."""
        rate = self.config.unit_rate
        readings_total = sum(consumption, ZERO)
        expected_charge = (readings_total * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        difference = expected_charge - bill.total_charge

        excluded = ZERO
        exclusion_description = ""
        for exclusion in self.config.known_credit_exclusions:
            if not exclusion.applies_to(document.period_id, document.fiscal_quarter):
                continue
            if abs(abs(difference) - exclusion.amount) < exclusion.match_tolerance:
                difference = difference + exclusion.amount if difference < 0 else difference - exclusion.amount
                excluded = exclusion.amount
                exclusion_description = exclusion.description
                self.logger.info(
                    "  Unit %s %s: excluding known credit $%s (%s)",
                    bill.unit_id,
                    document.period_id,
                    exclusion.amount,
                    exclusion.description,
                )
                break

        entries, _ = self.allocator.align_breakdown(bill.breakdown, document.sub_period_labels)
        sub_periods = [
            SubPeriodDiscrepancy(
                label=entry.label,
                bill_consumption=entry.consumption,
                readings_consumption=value,
                bill_charge=entry.charge,
                expected_charge=(value * rate).quantize(CENT, rounding=ROUND_HALF_UP),
            )
            for entry, value in zip(entries, consumption)
            if entry.consumption != value
        ]

        if not sub_periods and abs(difference) < self.config.money_tolerance:
            result.state = ReconciliationState.VERIFIED
            result.message = "Paid; no discrepancy"
            self.logger.info("  Unit %s %s: paid, verified", bill.unit_id, document.period_id)
            return

        result.state = ReconciliationState.PAID_DISCREPANCY
        result.discrepancy = PaidBillDiscrepancy(
            unit_id=bill.unit_id,
            period_id=document.period_id,
            current_consumption=bill.total_consumption,
            readings_consumption=readings_total,
            current_charge=bill.total_charge,
            expected_charge=expected_charge,
            charge_difference=difference,
            sub_periods=sub_periods,
            excluded_credit=excluded,
            exclusion_description=exclusion_description,
        )
        result.message = f"Paid bill differs from readings by ${difference:+,.2f}; not modified"
        self.logger.info("  Unit %s %s: %s", bill.unit_id, document.period_id, result.message)
