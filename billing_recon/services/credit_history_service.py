"""Comparison of derived credit events against the persisted credit history."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from billing_recon.services.billing_store import BillingStore
from billing_recon.services.billing_types import CreditEvent, CreditEventType, PersistedCreditHistoryEntry
from billing_recon.services.credit_flow_service import closing_balance, derive_statement_events
from billing_recon.services.errors import MissingDataError, StoreError

logger = logging.getLogger(__name__)

EVENT_TYPES = {event_type.value for event_type in CreditEventType}


@dataclass
class CreditMatch:
    """A derived event paired with the persisted entry that records it."""

    event: CreditEvent
    entry: PersistedCreditHistoryEntry

    @property
    def amount_difference(self) -> Decimal:
        return abs(self.entry.amount) - self.event.amount


@dataclass
class AmbiguousMatch:
    """A derived event with two or more equally good persisted candidates."""

    event: CreditEvent
    candidates: list[PersistedCreditHistoryEntry]


@dataclass
class CreditHistoryComparison:
    """Outcome of comparing one unit's derived and persisted credit ledgers."""

    unit_id: str | None = None
    matched: list[CreditMatch] = field(default_factory=list)
    missing_from_persisted: list[CreditEvent] = field(default_factory=list)
    extra_in_persisted: list[PersistedCreditHistoryEntry] = field(default_factory=list)
    ambiguous: list[AmbiguousMatch] = field(default_factory=list)
    ignored: list[PersistedCreditHistoryEntry] = field(default_factory=list)
    """Persisted entries of types that are not credit movements (e.g. starting_balance)"""
    closing_balance: Decimal | None = None

    @property
    def is_consistent(self) -> bool:
        return not (self.missing_from_persisted or self.extra_in_persisted or self.ambiguous)


class CreditHistoryComparator:
    """One-to-one matching of derived credit events with persisted entries."""

    def __init__(self, window_days: int = 7, amount_tolerance: Decimal = Decimal("1.00")):
        self.window_days = window_days
        self.amount_tolerance = amount_tolerance

    def _days_apart(self, event: CreditEvent, entry: PersistedCreditHistoryEntry) -> int | None:
        if entry.date is None or event.date is None:
            return None
        return abs((entry.date - event.date).days)

    def is_candidate(self, event: CreditEvent, entry: PersistedCreditHistoryEntry) -> bool:
        if entry.type != event.type.value:
            return False
        if abs(abs(entry.amount) - event.amount) >= self.amount_tolerance:
            return False
        days = self._days_apart(event, entry)
        return days is not None and days <= self.window_days

    def _rank(self, event: CreditEvent, entry: PersistedCreditHistoryEntry) -> tuple[int, Decimal]:
        return self._days_apart(event, entry), abs(abs(entry.amount) - event.amount)

    def _best_candidates(
        self,
        event: CreditEvent,
        available: list[PersistedCreditHistoryEntry],
        claimed: set[int],
    ) -> list[PersistedCreditHistoryEntry]:
        candidates = [
            entry
            for entry in available
            if id(entry) not in claimed and self.is_candidate(event, entry)
        ]
        if not candidates:
            return []
        best_rank = min(self._rank(event, entry) for entry in candidates)
        return [entry for entry in candidates if self._rank(event, entry) == best_rank]

    @staticmethod
    def _interchangeable(entries: list[PersistedCreditHistoryEntry]) -> bool:
        first = entries[0]
        return all((e.type, e.date, e.amount) == (first.type, first.date, first.amount) for e in entries)

    def _settle(
        self,
        event: CreditEvent,
        available: list[PersistedCreditHistoryEntry],
        claimed: set[int],
        result: CreditHistoryComparison,
    ) -> bool:
        """Record the event as matched or missing; False when its best candidates tie."""
        best = self._best_candidates(event, available, claimed)
        if not best:
            result.missing_from_persisted.append(event)
        elif len(best) == 1 or self._interchangeable(best):
            result.matched.append(CreditMatch(event=event, entry=best[0]))
            claimed.add(id(best[0]))
        else:
            return False
        return True

    def compare(
        self,
        events: list[CreditEvent],
        persisted: list[PersistedCreditHistoryEntry],
        unit_id: str | None = None,
    ) -> CreditHistoryComparison:
        """Match events to persisted entries; nearest date first, then nearest amount.

        Each persisted entry matches at most one event. Tied candidates that
        record the same type, date and amount are interchangeable and the first
        one is matched. Other ties are resolved after every unambiguous event
        has been matched; an event still tied then is reported as ambiguous
        together with its candidates, which are excluded from the extra list.
        """
        result = CreditHistoryComparison(unit_id=unit_id)
        available = []
        for entry in persisted:
            if entry.type in EVENT_TYPES:
                available.append(entry)
            else:
                result.ignored.append(entry)

        claimed: set[int] = set()
        tied = [event for event in events if not self._settle(event, available, claimed, result)]
        for event in tied:
            if not self._settle(event, available, claimed, result):
                best = self._best_candidates(event, available, claimed)
                result.ambiguous.append(AmbiguousMatch(event=event, candidates=best))
                claimed.update(id(entry) for entry in best)

        result.extra_in_persisted = [entry for entry in available if id(entry) not in claimed]
        return result


async def compare_unit_credit_history(
    store: BillingStore,
    unit_id: str,
    comparator: CreditHistoryComparator | None = None,
) -> CreditHistoryComparison:
    """Derive a unit's credit events from its statement and compare to its history.

    Raises:
        MissingDataError: If the unit has no statement
    """
    statement = await store.get_unit_statement(unit_id)
    if statement is None:
        raise MissingDataError(unit_id, "statement")

    events = derive_statement_events(statement)
    persisted = await store.get_persisted_credit_history(unit_id)
    logger.info(
        "Unit %s: %d derived credit event(s), %d persisted entr(ies)",
        unit_id,
        len(events),
        len(persisted),
    )

    comparison = (comparator or CreditHistoryComparator()).compare(events, persisted, unit_id=unit_id)
    comparison.closing_balance = closing_balance(statement)
    return comparison


@dataclass
class CreditHistoryRun:
    """Comparisons of every unit with a statement; per-unit failures kept apart."""

    comparisons: list[CreditHistoryComparison] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def inconsistent(self) -> list[CreditHistoryComparison]:
        return [comparison for comparison in self.comparisons if not comparison.is_consistent]


async def compare_all_credit_histories(
    store: BillingStore,
    comparator: CreditHistoryComparator | None = None,
) -> CreditHistoryRun:
    """Compare the credit history of every unit that has a statement.

    A unit whose data cannot be read is recorded as a failure and the
    remaining units are still compared.
    """
    run = CreditHistoryRun()
    for unit_id in await store.list_statement_unit_ids():
        try:
            run.comparisons.append(await compare_unit_credit_history(store, unit_id, comparator))
        except (MissingDataError, StoreError) as e:
            logger.error("Unit %s: credit history comparison failed: %s", unit_id, e)
            run.failures[unit_id] = str(e)
    return run
