"""Tests for shared billing types."""

from datetime import date
from decimal import Decimal
from typing import get_type_hints

from billing_recon.services.billing_types import Payment, parse_date


def test_payment_date_annotation_resolves():
    hints = get_type_hints(Payment)

    assert hints["date"] == date | None


def test_payment_defaults_to_undated():
    payment = Payment(amount=Decimal("25.00"))

    assert payment.date is None
    assert Payment(amount=Decimal("25.00"), date=parse_date("2025-10-05")).date == date(2025, 10, 5)
