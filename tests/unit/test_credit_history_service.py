"""Unit tests for the credit history comparator."""

from datetime import date
from decimal import Decimal

import pytest

from billing_recon.services.billing_types import CreditEvent, CreditEventType, PersistedCreditHistoryEntry
from billing_recon.services.credit_history_service import CreditHistoryComparator


def event(day: str, event_type: CreditEventType, amount: str) -> CreditEvent:
    return CreditEvent(
        date=date.fromisoformat(day),
        type=event_type,
        amount=Decimal(amount),
        source_description="Q2 water bill",
    )


def entry(day: str | None, entry_type: str, amount: str, entry_id: str | None = None) -> PersistedCreditHistoryEntry:
    return PersistedCreditHistoryEntry(
        date=date.fromisoformat(day) if day else None,
        type=entry_type,
        amount=Decimal(amount),
        entry_id=entry_id,
    )


USED = CreditEventType.CREDIT_USED
ADDED = CreditEventType.CREDIT_ADDED


class TestCreditHistoryComparator:
    """One-to-one matching within date window and amount tolerance."""

    @pytest.fixture
    def comparator(self):
        return CreditHistoryComparator(window_days=7, amount_tolerance=Decimal("1.00"))

    def test_matches_signed_persisted_amount(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", USED, "150.00")],
            [entry("2025-10-03", "credit_used", "-150.00")],
        )

        assert len(result.matched) == 1
        assert result.is_consistent

    def test_amount_within_tolerance_matches(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", ADDED, "200.00")],
            [entry("2025-10-01", "credit_added", "200.75")],
        )

        assert len(result.matched) == 1
        assert result.matched[0].amount_difference == Decimal("0.75")

    def test_amount_beyond_tolerance_is_missing_and_extra(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", ADDED, "200.00")],
            [entry("2025-10-01", "credit_added", "201.00")],
        )

        assert len(result.missing_from_persisted) == 1
        assert len(result.extra_in_persisted) == 1

    def test_date_outside_window_does_not_match(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", USED, "150.00")],
            [entry("2025-10-09", "credit_used", "-150.00")],
        )

        assert result.matched == []
        assert len(result.missing_from_persisted) == 1

    def test_type_must_match(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", USED, "150.00")],
            [entry("2025-10-01", "credit_added", "150.00")],
        )

        assert result.matched == []

    def test_starting_balance_entries_are_ignored(self, comparator):
        result = comparator.compare(
            [],
            [entry("2025-07-01", "starting_balance", "-100.00")],
        )

        assert result.extra_in_persisted == []
        assert len(result.ignored) == 1
        assert result.is_consistent

    def test_entry_without_date_never_matches(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", USED, "150.00")],
            [entry(None, "credit_used", "-150.00")],
        )

        assert len(result.missing_from_persisted) == 1
        assert len(result.extra_in_persisted) == 1

    def test_each_persisted_entry_matches_once(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", USED, "50.00"), event("2025-10-02", USED, "50.00")],
            [entry("2025-10-01", "credit_used", "-50.00", entry_id="a")],
        )

        assert [m.entry.entry_id for m in result.matched] == ["a"]
        assert len(result.missing_from_persisted) == 1

    def test_nearest_date_wins(self, comparator):
        result = comparator.compare(
            [event("2025-10-05", USED, "50.00")],
            [
                entry("2025-10-01", "credit_used", "-50.00", entry_id="far"),
                entry("2025-10-04", "credit_used", "-50.00", entry_id="near"),
            ],
        )

        assert result.matched[0].entry.entry_id == "near"
        assert [e.entry_id for e in result.extra_in_persisted] == ["far"]

    def test_nearest_amount_breaks_date_tie(self, comparator):
        result = comparator.compare(
            [event("2025-10-05", USED, "50.00")],
            [
                entry("2025-10-05", "credit_used", "-50.60", entry_id="loose"),
                entry("2025-10-05", "credit_used", "-50.10", entry_id="close"),
            ],
        )

        assert result.matched[0].entry.entry_id == "close"

    def test_equal_candidates_are_ambiguous(self, comparator):
        result = comparator.compare(
            [event("2025-10-05", USED, "50.00")],
            [
                entry("2025-10-03", "credit_used", "-50.00", entry_id="before"),
                entry("2025-10-07", "credit_used", "-50.00", entry_id="after"),
            ],
        )

        assert result.matched == []
        assert len(result.ambiguous) == 1
        assert {c.entry_id for c in result.ambiguous[0].candidates} == {"before", "after"}
        assert result.extra_in_persisted == []
        assert not result.is_consistent

    def test_identical_duplicates_match_one_to_one(self, comparator):
        result = comparator.compare(
            [event("2025-10-01", USED, "50.00"), event("2025-10-01", USED, "50.00")],
            [
                entry("2025-10-01", "credit_used", "-50.00", entry_id="a"),
                entry("2025-10-01", "credit_used", "-50.00", entry_id="b"),
            ],
        )

        assert [m.entry.entry_id for m in result.matched] == ["a", "b"]
        assert result.ambiguous == []
        assert result.missing_from_persisted == []
        assert result.is_consistent

    def test_tie_resolved_once_other_events_are_matched(self, comparator):
        result = comparator.compare(
            [event("2025-10-05", USED, "50.00"), event("2025-10-07", USED, "50.00")],
            [
                entry("2025-10-03", "credit_used", "-50.00", entry_id="before"),
                entry("2025-10-07", "credit_used", "-50.00", entry_id="after"),
            ],
        )

        assert {m.event.date.day: m.entry.entry_id for m in result.matched} == {5: "before", 7: "after"}
        assert result.ambiguous == []
        assert result.extra_in_persisted == []
