"""Plain-text reports printed at the end of CLI runs."""

from collections import defaultdict
from datetime import date

from billing_recon.services.billing_types import ZERO
from billing_recon.services.credit_history_service import CreditHistoryComparison
from billing_recon.services.reconciliation_service import PaidBillDiscrepancy

RULE = "=" * 60


def format_paid_discrepancy_report(discrepancies: list[PaidBillDiscrepancy]) -> str:
    """Paid bills that differ from readings, grouped by unit, with credit totals."""
    if not discrepancies:
        return "PAID BILL DISCREPANCIES\nNone found."

    by_unit: dict[str, list[PaidBillDiscrepancy]] = defaultdict(list)
    for discrepancy in discrepancies:
        by_unit[discrepancy.unit_id].append(discrepancy)

    lines = ["PAID BILL DISCREPANCIES", RULE]
    total_credit = ZERO
    total_undercharge = ZERO

    for unit_id in sorted(by_unit):
        lines.append(f"Unit {unit_id}")
        unit_credit = ZERO
        for d in by_unit[unit_id]:
            lines.append(
                f"  {d.period_id}: billed {d.current_consumption} units / ${d.current_charge:,.2f}, "
                f"readings {d.readings_consumption} units / ${d.expected_charge:,.2f}"
            )
            for sub in d.sub_periods:
                lines.append(
                    f"    {sub.label}: billed {sub.bill_consumption}, readings {sub.readings_consumption} "
                    f"(${sub.difference:+,.2f})"
                )
            if d.excluded_credit:
                lines.append(f"    Excluded known credit ${d.excluded_credit:,.2f} ({d.exclusion_description})")
            if d.credit_due:
                lines.append(f"    Credit due: ${d.credit_due:,.2f}")
            elif d.undercharge:
                lines.append(f"    Undercharged: ${d.undercharge:,.2f}")
            unit_credit += d.credit_due
            total_undercharge += d.undercharge
        lines.append(f"  Unit credit due: ${unit_credit:,.2f}")
        total_credit += unit_credit

    lines.append(RULE)
    lines.append(f"Total credit due: ${total_credit:,.2f}")
    lines.append(f"Total undercharged: ${total_undercharge:,.2f}")
    return "\n".join(lines)


def _fmt_date(value: date | None) -> str:
    return value.isoformat() if value else "----------"


def format_comparison_report(comparison: CreditHistoryComparison) -> str:
    """Side-by-side view of derived credit events against the persisted history."""
    lines = [f"CREDIT HISTORY COMPARISON - unit {comparison.unit_id}", RULE]

    lines.append(f"Matched ({len(comparison.matched)}):")
    for match in comparison.matched:
        lines.append(
            f"  {_fmt_date(match.event.date)} {match.event.type.value:<13} ${match.event.amount:,.2f}"
            f"  <->  {_fmt_date(match.entry.date)} ${match.entry.amount:,.2f}"
        )

    lines.append(f"Missing from persisted history ({len(comparison.missing_from_persisted)}):")
    for event in comparison.missing_from_persisted:
        lines.append(f"  {_fmt_date(event.date)} {event.type.value:<13} ${event.amount:,.2f}  {event.note}")

    lines.append(f"Extra in persisted history ({len(comparison.extra_in_persisted)}):")
    for entry in sorted(comparison.extra_in_persisted, key=lambda e: e.date or date.min):
        lines.append(f"  {_fmt_date(entry.date)} {entry.type:<13} ${entry.amount:,.2f}  {entry.note}")

    if comparison.ambiguous:
        lines.append(f"Ambiguous - review manually ({len(comparison.ambiguous)}):")
        for item in comparison.ambiguous:
            lines.append(f"  {_fmt_date(item.event.date)} {item.event.type.value:<13} ${item.event.amount:,.2f}")
            for candidate in item.candidates:
                lines.append(f"    candidate {_fmt_date(candidate.date)} ${candidate.amount:,.2f}  {candidate.note}")

    lines.append(RULE)
    if comparison.closing_balance is not None:
        lines.append(f"Closing balance: ${comparison.closing_balance:,.2f}")
    lines.append("Histories agree" if comparison.is_consistent else "Histories differ")
    return "\n".join(lines)
