"""Shared fixtures: reconciliation rules and billing snapshots."""

import pytest

from billing_recon.config.recon_config import ReconConfig
from billing_recon.services.fiscal_calendar import FiscalCalendar


def water_entry(month: str, consumption, charge) -> dict:
    """Stored breakdown entry of one sub-period."""
    return {
        "month": month,
        "consumption": consumption,
        "waterCharge": charge,
        "totalAmount": charge,
    }


def unit_bill(breakdown, total_consumption, total_charge, paid_amount=0, payments=None) -> dict:
    """Stored unit bill document."""
    document = {
        "monthlyBreakdown": breakdown,
        "totalConsumption": total_consumption,
        "totalCharge": total_charge,
        "paidAmount": paid_amount,
    }
    if payments is not None:
        document["payments"] = payments
    return document


def quarter_readings(unit_id: str, prior, july, august, september, fiscal_year: int = 2026) -> dict:
    """Readings of the first fiscal quarter (prior key wraps into the previous year)."""
    return {
        f"{fiscal_year - 1}-11": {unit_id: prior},
        f"{fiscal_year}-00": {unit_id: july},
        f"{fiscal_year}-01": {unit_id: august},
        f"{fiscal_year}-02": {unit_id: september},
    }


def merge_readings(*parts: dict) -> dict:
    merged: dict = {}
    for part in parts:
        for key, units in part.items():
            merged.setdefault(key, {}).update(units)
    return merged


@pytest.fixture
def make_entry():
    return water_entry


@pytest.fixture
def make_bill():
    return unit_bill


@pytest.fixture
def make_readings():
    return quarter_readings


@pytest.fixture
def recon_config():
    """Default rules: $50 per unit, tolerance 5, no known-credit exclusions."""
    return ReconConfig()


@pytest.fixture
def calendar():
    return FiscalCalendar(start_month=7, sub_periods_per_cycle=3)


@pytest.fixture
def misallocated_snapshot():
    """Unit 101 billed [15, 10, 10] while readings say [10, 0, 25]."""
    return {
        "readings": quarter_readings("101", 100, 110, 110, 135),
        "bills": {
            "2026-Q1": {
                "fiscalYear": 2026,
                "fiscalQuarter": 1,
                "units": {
                    "101": unit_bill(
                        [
                            water_entry("July", 15, 750),
                            water_entry("August", 10, 500),
                            water_entry("September", 10, 500),
                        ],
                        total_consumption=35,
                        total_charge=1750,
                    ),
                },
            },
        },
    }


@pytest.fixture
def credit_statement():
    """Statement where a prepayment becomes credit and is later used."""
    return {
        "openingBalance": "0",
        "lineItems": [
            {"date": "2025-07-01", "description": "Q1 water bill", "charge": "100.00", "balance": "100.00"},
            {"date": "2025-07-10", "description": "Payment", "payment": "300.00", "balance": "-200.00"},
            {"date": "2025-10-01", "description": "Q2 water bill", "charge": "150.00", "balance": "-50.00"},
            {"date": "2026-01-01", "description": "Q3 water bill", "charge": "120.00", "balance": "70.00"},
        ],
    }


@pytest.fixture
def combine_readings():
    return merge_readings
