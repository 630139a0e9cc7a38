"""Tests for plain-text reports."""

from datetime import date
from decimal import Decimal

from billing_recon.services.billing_types import CreditEvent, CreditEventType, PersistedCreditHistoryEntry
from billing_recon.services.credit_history_service import (
    AmbiguousMatch,
    CreditHistoryComparison,
    CreditMatch,
)
from billing_recon.services.reconciliation_service import PaidBillDiscrepancy, SubPeriodDiscrepancy
from billing_recon.services.reports import format_comparison_report, format_paid_discrepancy_report


def discrepancy(unit_id: str, period_id: str, difference: str, excluded: str = "0") -> PaidBillDiscrepancy:
    return PaidBillDiscrepancy(
        unit_id=unit_id,
        period_id=period_id,
        current_consumption=Decimal("40"),
        readings_consumption=Decimal("35"),
        current_charge=Decimal("2000.00"),
        expected_charge=Decimal("1750.00"),
        charge_difference=Decimal(difference),
        sub_periods=[
            SubPeriodDiscrepancy(
                label="July",
                bill_consumption=Decimal("20"),
                readings_consumption=Decimal("10"),
                bill_charge=Decimal("1000.00"),
                expected_charge=Decimal("500.00"),
            )
        ],
        excluded_credit=Decimal(excluded),
        exclusion_description="Sewer overcharge" if excluded != "0" else "",
    )


class TestPaidDiscrepancyReport:
    def test_empty(self):
        assert "None found." in format_paid_discrepancy_report([])

    def test_grouped_by_unit_with_totals(self):
        report = format_paid_discrepancy_report(
            [
                discrepancy("102", "2026-Q1", "40.00"),
                discrepancy("101", "2026-Q1", "-250.00"),
                discrepancy("101", "2026-Q2", "-50.00", excluded="289.73"),
            ]
        )

        assert report.index("Unit 101") < report.index("Unit 102")
        assert "July: billed 20, readings 10 ($-500.00)" in report
        assert "Excluded known credit $289.73 (Sewer overcharge)" in report
        assert "Unit credit due: $300.00" in report
        assert "Undercharged: $40.00" in report
        assert "Total credit due: $300.00" in report
        assert "Total undercharged: $40.00" in report


class TestComparisonReport:
    def test_sections(self):
        used = CreditEvent(
            date=date(2025, 10, 1),
            type=CreditEventType.CREDIT_USED,
            amount=Decimal("150.00"),
            source_description="Q2 water bill",
        )
        added = CreditEvent(
            date=date(2025, 7, 10),
            type=CreditEventType.CREDIT_ADDED,
            amount=Decimal("200.00"),
            source_description="Payment",
        )
        persisted = PersistedCreditHistoryEntry(date=date(2025, 10, 2), type="credit_used", amount=Decimal("-150.00"))
        extra = PersistedCreditHistoryEntry(date=None, type="credit_used", amount=Decimal("-75.00"), note="manual")
        comparison = CreditHistoryComparison(
            unit_id="101",
            matched=[CreditMatch(event=used, entry=persisted)],
            missing_from_persisted=[added],
            extra_in_persisted=[extra],
            ambiguous=[AmbiguousMatch(event=used, candidates=[persisted, persisted])],
            closing_balance=Decimal("-50.00"),
        )

        report = format_comparison_report(comparison)

        assert "CREDIT HISTORY COMPARISON - unit 101" in report
        assert "Matched (1):" in report
        assert "Added $200.00 to credit from Payment" in report
        assert "---------- credit_used" in report
        assert "Ambiguous - review manually (1):" in report
        assert "Closing balance: $-50.00" in report
        assert "Histories differ" in report

    def test_consistent(self):
        report = format_comparison_report(CreditHistoryComparison(unit_id="101"))

        assert "Histories agree" in report
