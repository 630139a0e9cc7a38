"""Tests for the exception hierarchy."""

import pytest

from billing_recon.services.errors import (
    AlreadySettledError,
    ConfigError,
    MissingDataError,
    PersistenceError,
    ReconciliationError,
    StoreError,
    StoreUnavailableError,
)


@pytest.mark.parametrize(
    "error_class",
    [ConfigError, StoreError, MissingDataError, AlreadySettledError],
)
def test_all_errors_derive_from_reconciliation_error(error_class):
    assert issubclass(error_class, ReconciliationError)


def test_store_errors():
    assert issubclass(StoreUnavailableError, StoreError)
    assert issubclass(PersistenceError, StoreError)


def test_persistence_error_carries_context():
    error = PersistenceError("write rejected", period_id="2026-Q1", unit_id="101")

    assert str(error) == "write rejected"
    assert error.period_id == "2026-Q1"
    assert error.unit_id == "101"


def test_missing_data_error_message():
    error = MissingDataError("101", "2026-02")

    assert str(error) == "Missing data for unit 101: 2026-02"
    assert error.period_key == "2026-02"
