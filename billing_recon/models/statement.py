"""Running-balance statement ORM models."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_recon.models import Base, BaseModel


class UnitStatementRecord(Base, BaseModel):
    """Statement header: the opening balance of a unit's ledger."""

    __tablename__ = "unit_statements"

    unit_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Negative balance means credit on account",
    )

    lines: Mapped[list["StatementLineRecord"]] = relationship(
        "StatementLineRecord",
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementLineRecord.sequence",
    )


class StatementLineRecord(Base, BaseModel):
    """A statement line with the balance after applying it."""

    __tablename__ = "statement_lines"

    statement_id: Mapped[int] = mapped_column(ForeignKey("unit_statements.id"), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    line_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    payment: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    statement: Mapped[UnitStatementRecord] = relationship("UnitStatementRecord", back_populates="lines")
