"""Persisted credit history ORM model - written at payment/charge time elsewhere."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from billing_recon.models import Base, BaseModel


class CreditHistoryRecord(Base, BaseModel):
    """Entry of a unit's credit balance history (comparison target only)."""

    __tablename__ = "credit_history"

    unit_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    entry_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="credit_added, credit_used, starting_balance, ...",
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text(), nullable=True)
