"""Integration tests for the SQLAlchemy billing store on in-memory SQLite."""

from datetime import date
from decimal import Decimal

import pytest

from billing_recon.models import (
    BillingPeriodRecord,
    CreditHistoryRecord,
    MeterReadingRecord,
    StatementLineRecord,
    UnitBillRecord,
    UnitStatementRecord,
)
from billing_recon.services.credit_history_service import compare_unit_credit_history
from billing_recon.services.db import create_engine_for, create_session_factory, init_schema, to_async_url
from billing_recon.services.errors import MissingDataError, PersistenceError
from billing_recon.services.reconciliation_service import ReconciliationService, ReconciliationState
from billing_recon.services.sql_store import SqlBillingStore


async def make_store(make_bill, make_entry) -> tuple[SqlBillingStore, object]:
    """Seed a fresh in-memory database with one misallocated bill and a credit ledger."""
    engine = create_engine_for("sqlite:///:memory:")
    await init_schema(engine)
    session_factory = create_session_factory(engine)

    async with session_factory() as session:
        for key, value in (("2025-11", 100), ("2026-00", 110), ("2026-01", 110), ("2026-02", 135)):
            session.add(MeterReadingRecord(unit_id="101", period_key=key, reading_value=Decimal(value)))

        period = BillingPeriodRecord(period_id="2026-Q1", fiscal_year=2026, fiscal_quarter=1)
        period.unit_bills.append(
            UnitBillRecord(
                unit_id="101",
                document=make_bill(
                    [make_entry("July", 15, 750), make_entry("August", 10, 500), make_entry("September", 10, 500)],
                    35,
                    1750,
                ),
            )
        )
        session.add(period)

        statement = UnitStatementRecord(unit_id="101", opening_balance=Decimal("-100.00"))
        statement.lines.extend(
            [
                StatementLineRecord(
                    sequence=1,
                    line_date=date(2025, 10, 1),
                    description="Q1 water bill",
                    charge=Decimal("150.00"),
                    payment=Decimal("0"),
                    balance=Decimal("50.00"),
                ),
                StatementLineRecord(
                    sequence=2,
                    line_date=date(2025, 10, 20),
                    description="Payment",
                    payment=Decimal("250.00"),
                    charge=Decimal("0"),
                    balance=Decimal("-200.00"),
                ),
            ]
        )
        session.add(statement)

        session.add_all(
            [
                CreditHistoryRecord(
                    unit_id="101", entry_date=date(2025, 7, 1), entry_type="starting_balance", amount=Decimal("100")
                ),
                CreditHistoryRecord(
                    unit_id="101",
                    entry_date=date(2025, 10, 2),
                    entry_type="credit_used",
                    amount=Decimal("-100.00"),
                    note="Used credit for Q1 water bill",
                ),
            ]
        )
        await session.commit()

    return SqlBillingStore(session_factory), engine


class TestSqlBillingStore:
    """BillingStore protocol over the ORM models."""

    def test_async_url_mapping(self):
        assert to_async_url("sqlite:///./billing.db") == "sqlite+aiosqlite:///./billing.db"
        assert to_async_url("sqlite+aiosqlite:///./billing.db") == "sqlite+aiosqlite:///./billing.db"

    @pytest.mark.asyncio
    async def test_reads(self, make_bill, make_entry):
        store, engine = await make_store(make_bill, make_entry)
        try:
            await store.ping()
            assert await store.get_reading("101", "2026-02") == Decimal("135")
            assert await store.get_reading("101", "2027-00") is None
            assert await store.list_billing_period_ids() == ["2026-Q1"]

            document = await store.get_billing_period_document("2026-Q1")
            assert document["fiscalQuarter"] == 1
            assert document["units"]["101"]["totalConsumption"] == 35
            assert await store.get_billing_period_document("2030-Q1") is None

            statement = await store.get_unit_statement("101")
            assert statement.opening_balance == Decimal("-100.00")
            assert [line.description for line in statement.line_items] == ["Q1 water bill", "Payment"]
            assert await store.get_unit_statement("999") is None
            assert await store.list_statement_unit_ids() == ["101"]
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_update_missing_unit_raises(self, make_bill, make_entry):
        store, engine = await make_store(make_bill, make_entry)
        try:
            with pytest.raises(PersistenceError):
                await store.update_unit_bill("2026-Q1", "999", {"totalCharge": Decimal("1.00")})
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_reconciliation_writes_and_is_idempotent(self, make_bill, make_entry, recon_config):
        store, engine = await make_store(make_bill, make_entry)
        try:
            service = ReconciliationService(store, recon_config)

            first = await service.reconcile(unit_ids=["101"])
            second = await service.reconcile(unit_ids=["101"])

            assert [r.state for r in first.results] == [ReconciliationState.CORRECTED]
            assert [r.state for r in second.results] == [ReconciliationState.VERIFIED]

            document = await store.get_billing_period_document("2026-Q1")
            unit = document["units"]["101"]
            assert [Decimal(e["consumption"]) for e in unit["monthlyBreakdown"]] == [
                Decimal("10"),
                Decimal("0"),
                Decimal("25"),
            ]
            assert Decimal(unit["totalCharge"]) == Decimal("1750.00")
            assert [e["consumption"] for e in unit["breakdownOriginal"]] == ["15", "10", "10"]
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_credit_history_comparison(self, make_bill, make_entry):
        store, engine = await make_store(make_bill, make_entry)
        try:
            comparison = await compare_unit_credit_history(store, "101")

            assert len(comparison.matched) == 1
            assert comparison.matched[0].entry.type == "credit_used"
            assert [e.amount for e in comparison.missing_from_persisted] == [Decimal("200.00")]
            assert [e.type for e in comparison.ignored] == ["starting_balance"]
            assert comparison.closing_balance == Decimal("-200.00")

            with pytest.raises(MissingDataError):
                await compare_unit_credit_history(store, "999")
        finally:
            await engine.dispose()
