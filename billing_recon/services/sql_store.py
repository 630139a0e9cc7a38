"""SQLAlchemy-backed billing store."""

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from billing_recon.models.billing_period import BillingPeriodRecord, UnitBillRecord
from billing_recon.models.credit_history import CreditHistoryRecord
from billing_recon.models.meter_reading import MeterReadingRecord
from billing_recon.models.statement import UnitStatementRecord
from billing_recon.services.billing_types import (
    PersistedCreditHistoryEntry,
    RunningBalanceLineItem,
    UnitStatement,
)
from billing_recon.services.errors import PersistenceError, StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


def to_json_value(value: Any) -> Any:
    """Convert Decimals inside a patch to strings so JSON columns accept them."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


class SqlBillingStore:
    """BillingStore implementation over the ORM models in billing_recon.models.

    Each operation runs in its own session; a write commits before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def ping(self) -> None:
        """Check that the database is reachable.

        Raises:
            StoreUnavailableError: If the connection fails
        """
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Billing store unreachable: {e}") from e

    async def get_reading(self, unit_id: str, period_key: str) -> Decimal | None:
        stmt = select(MeterReadingRecord.reading_value).where(
            MeterReadingRecord.unit_id == unit_id,
            MeterReadingRecord.period_key == period_key,
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {unit_id} at {period_key}: {e}") from e

    async def list_billing_period_ids(self) -> list[str]:
        stmt = select(BillingPeriodRecord.period_id).order_by(BillingPeriodRecord.period_id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list billing periods: {e}") from e

    async def get_billing_period_document(self, period_id: str) -> dict[str, Any] | None:
        stmt = (
            select(BillingPeriodRecord)
            .where(BillingPeriodRecord.period_id == period_id)
            .options(selectinload(BillingPeriodRecord.unit_bills))
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
                return record.to_document() if record else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load billing period {period_id}: {e}") from e

    async def update_unit_bill(self, period_id: str, unit_id: str, patch: dict[str, Any]) -> None:
        stmt = (
            select(UnitBillRecord)
            .join(BillingPeriodRecord)
            .where(
                BillingPeriodRecord.period_id == period_id,
                UnitBillRecord.unit_id == unit_id,
            )
        )
        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
                if record is None:
                    raise PersistenceError(
                        f"Unit bill {unit_id} not found in {period_id}",
                        period_id=period_id,
                        unit_id=unit_id,
                    )
                # Reassign so the JSON column is flagged as modified
                record.document = {**(record.document or {}), **to_json_value(patch)}
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    f"Failed to update unit {unit_id} in {period_id}: {e}",
                    period_id=period_id,
                    unit_id=unit_id,
                ) from e

    async def get_persisted_credit_history(self, unit_id: str) -> list[PersistedCreditHistoryEntry]:
        stmt = (
            select(CreditHistoryRecord)
            .where(CreditHistoryRecord.unit_id == unit_id)
            .order_by(CreditHistoryRecord.entry_date, CreditHistoryRecord.id)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load credit history of {unit_id}: {e}") from e

        return [
            PersistedCreditHistoryEntry(
                date=record.entry_date,
                type=record.entry_type,
                amount=record.amount,
                note=record.note or "",
                entry_id=str(record.id),
            )
            for record in records
        ]

    async def list_statement_unit_ids(self) -> list[str]:
        stmt = select(UnitStatementRecord.unit_id).order_by(UnitStatementRecord.unit_id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list unit statements: {e}") from e

    async def get_unit_statement(self, unit_id: str) -> UnitStatement | None:
        stmt = (
            select(UnitStatementRecord)
            .where(UnitStatementRecord.unit_id == unit_id)
            .options(selectinload(UnitStatementRecord.lines))
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load statement of {unit_id}: {e}") from e

        if record is None:
            return None
        return UnitStatement(
            unit_id=unit_id,
            opening_balance=record.opening_balance,
            line_items=[
                RunningBalanceLineItem(
                    date=line.line_date,
                    description=line.description,
                    charge=line.charge,
                    payment=line.payment,
                    balance=line.balance,
                )
                for line in record.lines
            ],
        )
