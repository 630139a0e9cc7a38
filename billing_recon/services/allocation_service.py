"""Bill allocation: redistribute a billing period's totals across its sub-periods.

Meter readings are the ground truth for how consumption splits across the
sub-periods of a bill. The allocator evaluates an ordered list of allocation
strategies; the first one that applies produces the corrected consumption,
charges are recomputed from the unit rate, and both are reconciled exactly to
the bill's recorded totals.

Strategies:
- readings_exact: readings total equals the bill total, use readings directly
- readings_scaled: readings total within tolerance, scale with largest-remainder rounding
- charge_ratio: split the bill total by the existing charge ratio (fallback, opt-in)
- even_split: split the bill total evenly (fallback, opt-in)
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, NamedTuple

from billing_recon.services.billing_types import CENT, ZERO, BreakdownEntry, UnitBill

logger = logging.getLogger(__name__)


class AllocationStatus(str, Enum):
    """Outcome of allocating one unit bill."""

    NO_CHANGE = "no_change"
    CORRECTED = "corrected"
    UNFIXABLE = "unfixable"


class SubPeriodChange(NamedTuple):
    """Before/after figures of one sub-period."""

    label: str
    consumption_before: Decimal
    consumption_after: Decimal
    charge_before: Decimal
    charge_after: Decimal


@dataclass
class AllocationResult:
    """Corrected breakdown (or the reason none could be produced)."""

    status: AllocationStatus
    readings_total: Decimal
    breakdown: list[BreakdownEntry] = field(default_factory=list)
    strategy: str | None = None
    reason: str | None = None
    changes: list[SubPeriodChange] = field(default_factory=list)


@dataclass
class AllocationRequest:
    """Inputs shared by every allocation strategy."""

    bill: UnitBill
    entries: list[BreakdownEntry]
    readings_consumption: list[Decimal]
    readings_total: Decimal
    difference: Decimal


def largest_index(values: list[Decimal]) -> int:
    """Index of the largest value (first on ties)."""
    best = 0
    for index, value in enumerate(values):
        if value > values[best]:
            best = index
    return best


def scale_to_total(values: list[Decimal], total: Decimal, quantum: Decimal) -> list[Decimal]:
    """Scale values proportionally so they sum exactly to total.

    Each scaled value is rounded half-up to the quantum; the rounding leftover
    goes to the position of the largest original value.

    Raises:
        ValueError: If values sum to zero
    """
    base = sum(values, ZERO)
    if base == 0:
        raise ValueError("Cannot scale values that sum to zero")

    ratio = total / base
    scaled = [(value * ratio).quantize(quantum, rounding=ROUND_HALF_UP) for value in values]
    leftover = total - sum(scaled, ZERO)
    if leftover:
        scaled[largest_index(values)] += leftover
    return scaled


class AllocationService:
    """Bill allocation engine with an ordered list of strategies."""

    def __init__(
        self,
        unit_rate: Decimal,
        consumption_tolerance: Decimal = Decimal("5"),
        money_tolerance: Decimal = Decimal("0.50"),
        consumption_quantum: Decimal = Decimal("1"),
        strategies: tuple[str, ...] = ("readings_exact", "readings_scaled"),
    ):
        """Initialize allocation service.

        Raises:
            ValueError: If a strategy name is unknown
        """
        self.unit_rate = unit_rate
        self.consumption_tolerance = consumption_tolerance
        self.money_tolerance = money_tolerance
        self.consumption_quantum = consumption_quantum

        registry: dict[str, Callable[[AllocationRequest], list[Decimal] | None]] = {
            "readings_exact": self.allocate_readings_exact,
            "readings_scaled": self.allocate_readings_scaled,
            "charge_ratio": self.allocate_charge_ratio,
            "even_split": self.allocate_even_split,
        }
        unknown = [name for name in strategies if name not in registry]
        if unknown:
            raise ValueError(f"Unknown allocation strategy: {', '.join(unknown)}")
        self.strategies = [(name, registry[name]) for name in strategies]

    # Strategies: each returns per-sub-period consumption or None when not applicable

    def allocate_readings_exact(self, request: AllocationRequest) -> list[Decimal] | None:
        if request.difference != 0:
            return None
        return list(request.readings_consumption)

    def allocate_readings_scaled(self, request: AllocationRequest) -> list[Decimal] | None:
        if request.difference == 0 or request.difference > self.consumption_tolerance:
            return None
        if request.readings_total <= 0:
            return None
        return scale_to_total(
            request.readings_consumption,
            request.bill.total_consumption,
            self.consumption_quantum,
        )

    def allocate_charge_ratio(self, request: AllocationRequest) -> list[Decimal] | None:
        charges = [entry.charge for entry in request.entries]
        if sum(charges, ZERO) <= 0:
            return None
        return scale_to_total(charges, request.bill.total_consumption, self.consumption_quantum)

    def allocate_even_split(self, request: AllocationRequest) -> list[Decimal] | None:
        if not request.entries:
            return None
        weights = [Decimal(1)] * len(request.entries)
        return scale_to_total(weights, request.bill.total_consumption, self.consumption_quantum)

    # Pipeline

    def align_breakdown(
        self,
        entries: list[BreakdownEntry],
        labels: tuple[str, ...],
    ) -> tuple[list[BreakdownEntry], list[BreakdownEntry]]:
        """Match breakdown entries to the cycle's sub-periods.

        Entries match by label first, then by position when the entry at that
        position carries an unknown label. Missing sub-periods get an empty
        entry without a position key.

        Returns:
            (aligned entries, entries that belong to no sub-period)
        """
        label_set = {label.lower() for label in labels}
        by_label = {entry.label.lower(): entry for entry in entries if entry.label}
        used: set[int] = set()
        aligned = []

        for index, label in enumerate(labels):
            entry = by_label.get(label.lower())
            if entry is None and index < len(entries):
                candidate = entries[index]
                if id(candidate) not in used and candidate.label.lower() not in label_set:
                    entry = replace(candidate, label=candidate.label or label)
                    used.add(id(candidate))
            if entry is None:
                entry = BreakdownEntry(label=label)
            used.add(id(entry))
            aligned.append(entry)

        leftovers = [entry for entry in entries if id(entry) not in used]
        return aligned, leftovers

    def reconcile_charges(self, consumption: list[Decimal], total_charge: Decimal) -> list[Decimal]:
        """Charges at the unit rate, adjusted to sum exactly to the bill's total charge.

        A difference beyond the monetary tolerance is spread proportionally over
        sub-periods with consumption; smaller rounding dust goes to the largest
        sub-period.
        """
        charges = [(value * self.unit_rate).quantize(CENT, rounding=ROUND_HALF_UP) for value in consumption]
        difference = total_charge - sum(charges, ZERO)
        if not difference or not charges:
            return charges

        largest = largest_index(consumption)
        if abs(difference) <= self.money_tolerance:
            charges[largest] += difference
            return charges

        logger.info(
            "Adjusting charges by %s to match bill total %s",
            difference,
            total_charge,
        )
        weighted = [(index, value) for index, value in enumerate(consumption) if value > 0]
        if not weighted:
            charges[largest] += difference
            return charges

        shares = scale_to_total([value for _, value in weighted], difference, CENT)
        for (index, _), share in zip(weighted, shares):
            charges[index] += share
        return charges

    def allocate(
        self,
        bill: UnitBill,
        readings_consumption: list[Decimal],
        labels: tuple[str, ...],
    ) -> AllocationResult:
        """Produce a corrected breakdown for an unpaid bill.

        Args:
            bill: Normalized unit bill
            readings_consumption: Readings-derived consumption per sub-period
            labels: Sub-period labels of the billing cycle, in order

        Returns:
            AllocationResult with status NO_CHANGE, CORRECTED or UNFIXABLE
        """
        if len(readings_consumption) != len(labels):
            raise ValueError("One readings-derived value is required per sub-period")

        readings_total = sum(readings_consumption, ZERO)
        entries, leftovers = self.align_breakdown(bill.breakdown, labels)
        if leftovers:
            return AllocationResult(
                status=AllocationStatus.UNFIXABLE,
                readings_total=readings_total,
                reason=(
                    "Breakdown has entries outside the billing cycle: "
                    + ", ".join(entry.label or "?" for entry in leftovers)
                ),
            )

        request = AllocationRequest(
            bill=bill,
            entries=entries,
            readings_consumption=readings_consumption,
            readings_total=readings_total,
            difference=abs(readings_total - bill.total_consumption),
        )

        consumption = None
        strategy_name = None
        for strategy_name, strategy in self.strategies:
            consumption = strategy(request)
            if consumption is not None:
                break

        if consumption is None:
            return AllocationResult(
                status=AllocationStatus.UNFIXABLE,
                readings_total=readings_total,
                reason=(
                    f"Readings total ({readings_total}) differs from bill total "
                    f"({bill.total_consumption}) by {request.difference}, "
                    f"tolerance is {self.consumption_tolerance}"
                ),
            )

        charges = self.reconcile_charges(consumption, bill.total_charge)
        corrected = [
            replace(entry, consumption=value, charge=charge)
            for entry, value, charge in zip(entries, consumption, charges)
        ]
        changes = [
            SubPeriodChange(
                label=after.label,
                consumption_before=before.consumption,
                consumption_after=after.consumption,
                charge_before=before.charge,
                charge_after=after.charge,
            )
            for before, after in zip(entries, corrected)
        ]

        unchanged = len(entries) == len(bill.breakdown) and all(
            change.consumption_before == change.consumption_after
            and change.charge_before == change.charge_after
            for change in changes
        )
        return AllocationResult(
            status=AllocationStatus.NO_CHANGE if unchanged else AllocationStatus.CORRECTED,
            readings_total=readings_total,
            breakdown=corrected,
            strategy=strategy_name,
            changes=changes,
        )
