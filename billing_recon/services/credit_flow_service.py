"""Credit flow derivation from a running account balance.

A negative balance is credit on account. Nothing in the statement says
"credit applied"; movements of credit are inferred from how the balance changes
from one line item to the next.
"""

import logging
from decimal import Decimal

from billing_recon.services.billing_types import (
    CENT,
    ZERO,
    CreditEvent,
    CreditEventType,
    RunningBalanceLineItem,
    UnitStatement,
)

logger = logging.getLogger(__name__)

EVENT_THRESHOLD = CENT
"""Movements of one cent or less are rounding, not events"""


def derive_credit_events(
    line_items: list[RunningBalanceLineItem],
    opening_balance: Decimal = ZERO,
) -> list[CreditEvent]:
    """Derive credit_added / credit_used events in a single forward pass.

    Rules, with prev being the balance before the line item:
    - prev < 0 and the item charges: credit_used of min(|prev|, charge)
    - the item pays and leaves the balance negative: credit_added of |balance|
      when prev >= 0, or of |balance| - |prev| when credit already existed

    Args:
        line_items: Statement lines in chronological order
        opening_balance: Balance before the first line item

    Returns:
        Credit events in line item order
    """
    events = []
    prev = opening_balance

    for item in line_items:
        if prev < 0 and item.charge > 0:
            used = min(abs(prev), item.charge)
            if used > EVENT_THRESHOLD:
                events.append(
                    CreditEvent(
                        date=item.date,
                        type=CreditEventType.CREDIT_USED,
                        amount=used,
                        source_description=item.description,
                        line_item_balance=item.balance,
                    )
                )

        if item.payment > 0 and item.balance < 0:
            added = abs(item.balance) if prev >= 0 else abs(item.balance) - abs(prev)
            if added > EVENT_THRESHOLD:
                events.append(
                    CreditEvent(
                        date=item.date,
                        type=CreditEventType.CREDIT_ADDED,
                        amount=added,
                        source_description=item.description,
                        line_item_balance=item.balance,
                    )
                )

        prev = item.balance

    return events


def find_balance_breaks(
    line_items: list[RunningBalanceLineItem],
    opening_balance: Decimal = ZERO,
) -> list[tuple[RunningBalanceLineItem, Decimal]]:
    """Line items whose balance is not prev + charge - payment.

    Returns:
        (line item, expected balance) pairs
    """
    breaks = []
    prev = opening_balance
    for item in line_items:
        expected = prev + item.charge - item.payment
        if abs(expected - item.balance) > EVENT_THRESHOLD:
            logger.warning(
                "Balance break on %s (%s): expected %s, statement shows %s",
                item.date,
                item.description,
                expected,
                item.balance,
            )
            breaks.append((item, expected))
        prev = item.balance
    return breaks


def closing_balance(statement: UnitStatement) -> Decimal:
    if not statement.line_items:
        return statement.opening_balance
    return statement.line_items[-1].balance


def derive_statement_events(statement: UnitStatement) -> list[CreditEvent]:
    """Derive credit events for a full statement, warning about balance breaks."""
    find_balance_breaks(statement.line_items, statement.opening_balance)
    return derive_credit_events(statement.line_items, statement.opening_balance)
